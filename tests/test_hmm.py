"""
Unit tests for BGHMM HMM module.

Tests cover:
- BackgroundHMM construction and derived properties
- Log-space forward and backward recursions
- Forward-backward consistency
- Sequence scoring
- Dictionary serialization
"""
import itertools

import pytest
import numpy as np
from scipy.special import logsumexp

from bghmm.core.hmm import (
    BackgroundHMM,
    log_likelihoods,
    messages_backwards_log,
    messages_forwards_log,
)
from bghmm.core.order_coding import code_sequence


def brute_force_log_prob(model, obs):
    """Sum over every state path; only usable for tiny T."""
    total = 0.0
    for path in itertools.product(range(model.n_states), repeat=len(obs)):
        p = model.startprob_[path[0]] * model.emissionprob_[path[0], obs[0]]
        for t in range(1, len(obs)):
            p *= model.transmat_[path[t - 1], path[t]] * model.emissionprob_[path[t], obs[t]]
        total += p
    return np.log(total)


class TestBackgroundHMMInitialization:
    """Test BackgroundHMM construction."""

    def test_empty_initialization(self):
        model = BackgroundHMM()
        assert model.startprob_ is None
        assert model.transmat_ is None
        assert model.emissionprob_ is None
        assert repr(model) == 'BackgroundHMM()'

    def test_derived_properties(self, simple_model):
        assert simple_model.n_states == 2
        assert simple_model.n_symbols == 4
        assert simple_model.order == 0

    def test_order_from_alphabet(self, order1_model):
        assert order1_model.n_symbols == 16
        assert order1_model.order == 1

    def test_copy_is_independent(self, simple_model):
        clone = simple_model.copy()
        clone.transmat_[0, 0] = 0.5
        assert simple_model.transmat_[0, 0] == 0.9


class TestForwardBackward:
    """Test log-space message recursions."""

    def test_log_likelihoods_shape(self, simple_model):
        simple_model._compute_log_probs()
        obs = np.array([0, 1, 2, 3, 0])
        lls = log_likelihoods(simple_model._log_emissionprob, obs)
        assert lls.shape == (5, 2)
        np.testing.assert_allclose(lls[1], np.log([0.1, 0.4]))

    def test_forward_returns_valid_alpha(self, simple_model):
        simple_model._compute_log_probs()
        obs = code_sequence('ATGCGCAT', 0)
        alpha, log_prob = simple_model._forward(obs)

        assert alpha.shape == (len(obs), 2)
        assert np.all(np.isfinite(alpha))
        assert np.isfinite(log_prob)
        assert log_prob < 0

    def test_backward_final_row_is_zero(self, simple_model):
        simple_model._compute_log_probs()
        lls = log_likelihoods(simple_model._log_emissionprob, code_sequence('ATGCGCAT', 0))
        beta = messages_backwards_log(simple_model._log_transmat, lls)
        np.testing.assert_array_equal(beta[-1], 0.0)
        assert np.all(np.isfinite(beta))

    def test_consistency_identity(self, order1_model):
        """logsumexp(alpha[t] + beta[t]) is the same at every position."""
        order1_model._compute_log_probs()
        obs = code_sequence('ACGTTGCAAGCTTAGGCATCGA', 1)
        lls = log_likelihoods(order1_model._log_emissionprob, obs)
        alpha = messages_forwards_log(order1_model._log_startprob, order1_model._log_transmat, lls)
        beta = messages_backwards_log(order1_model._log_transmat, lls)

        per_position = logsumexp(alpha + beta, axis=1)
        np.testing.assert_allclose(per_position, per_position[0], rtol=1e-10)
        np.testing.assert_allclose(per_position[0], logsumexp(alpha[-1]), rtol=1e-10)

    def test_posteriors_sum_to_one(self, simple_model):
        simple_model._compute_log_probs()
        obs = code_sequence('GGGCCCATATAT', 0)
        lls = log_likelihoods(simple_model._log_emissionprob, obs)
        alpha = messages_forwards_log(simple_model._log_startprob, simple_model._log_transmat, lls)
        beta = messages_backwards_log(simple_model._log_transmat, lls)
        log_gamma = alpha + beta - logsumexp(alpha[-1])
        np.testing.assert_allclose(np.exp(log_gamma).sum(axis=1), 1.0, rtol=1e-10)

    def test_zero_probability_gives_neg_inf(self):
        """Impossible symbols propagate as -inf, not errors."""
        model = BackgroundHMM(np.array([1.0, 0.0]),
                              np.array([[1.0, 0.0], [0.0, 1.0]]),
                              np.array([[1.0, 0.0, 0.0, 0.0], [0.25, 0.25, 0.25, 0.25]]))
        model._compute_log_probs()
        _, log_prob = model._forward(np.array([0, 0, 1]))
        assert log_prob == -np.inf


class TestScore:
    """Test sequence scoring."""

    def test_matches_brute_force(self, simple_model):
        obs = np.array([0, 2, 1, 3])
        np.testing.assert_allclose(simple_model.score(obs),
                                   brute_force_log_prob(simple_model, obs), rtol=1e-10)

    def test_list_of_sequences_sums(self, simple_model, simple_coded):
        total = simple_model.score(simple_coded)
        separate = sum(simple_model.score(obs) for obs in simple_coded)
        np.testing.assert_allclose(total, separate)

    def test_empty_sequences_ignored(self, simple_model):
        obs = np.array([0, 1, 2])
        assert simple_model.score([obs, np.array([], dtype=int)]) == simple_model.score(obs)

    def test_single_observation(self, simple_model):
        np.testing.assert_allclose(simple_model.score(np.array([3])), np.log(0.5 * 0.4 + 0.5 * 0.1))


class TestSerialization:
    """Test dictionary round trip."""

    def test_to_dict_from_dict(self, order1_model):
        d = order1_model.to_dict()
        assert d['model_type'] == 'BackgroundHMM'
        assert d['n_states'] == 3

        restored = BackgroundHMM.from_dict(d)
        np.testing.assert_allclose(restored.startprob_, order1_model.startprob_)
        np.testing.assert_allclose(restored.transmat_, order1_model.transmat_)
        np.testing.assert_allclose(restored.emissionprob_, order1_model.emissionprob_)

    def test_from_dict_missing_key(self, simple_model):
        d = simple_model.to_dict()
        del d['transmat']
        with pytest.raises(ValueError, match='transmat'):
            BackgroundHMM.from_dict(d)

    def test_params_vector_layout(self, simple_model):
        vec = simple_model.params_vector()
        assert vec.shape == (2 + 4 + 8,)
        np.testing.assert_array_equal(vec[:2], simple_model.startprob_)
        np.testing.assert_array_equal(vec[-8:], simple_model.emissionprob_.ravel())
