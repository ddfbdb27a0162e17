"""
Tests for bghmm.training.em (Baum-Welch updates and chain advancement).
"""
import pytest
import numpy as np

from bghmm.core.priors import init_random_hmm
from bghmm.training.em import PROB_FLOOR, em_step, train_work_item
from bghmm.training.registry import JobID
from bghmm.training.work_queue import WorkItem


class TestEMStep:
    def test_updated_model_normalized(self, simple_model, simple_coded):
        updated, _ = em_step(simple_model, simple_coded)
        np.testing.assert_allclose(updated.startprob_.sum(), 1.0)
        np.testing.assert_allclose(updated.transmat_.sum(axis=1), 1.0)
        np.testing.assert_allclose(updated.emissionprob_.sum(axis=1), 1.0)

    def test_returns_likelihood_of_input_model(self, simple_model, simple_coded):
        _, log_norm = em_step(simple_model, simple_coded)
        np.testing.assert_allclose(log_norm, simple_model.score(simple_coded), rtol=1e-8)

    def test_likelihood_never_decreases(self, simple_model, simple_coded):
        model = simple_model
        previous = -np.inf
        for _ in range(10):
            model, log_norm = em_step(model, simple_coded)
            assert log_norm >= previous - 1e-8
            previous = log_norm

    def test_zero_probabilities_floored(self, rng, simple_coded):
        model = init_random_hmm(2, 0, rng=rng)
        model.emissionprob_ = np.array([[1.0, 0.0, 0.0, 0.0], [0.0, 0.5, 0.5, 0.0]])
        updated, log_norm = em_step(model, simple_coded)
        assert np.isfinite(log_norm)
        assert np.all(updated.emissionprob_ >= PROB_FLOOR / 2)

    def test_input_model_unchanged(self, simple_model, simple_coded):
        before = simple_model.params_vector().copy()
        em_step(simple_model, simple_coded)
        np.testing.assert_array_equal(simple_model.params_vector(), before)

    def test_order_one_alphabet(self, order1_model, simple_sequences):
        from bghmm.core.order_coding import code_seqs
        updated, log_norm = em_step(order1_model, code_seqs(simple_sequences, 1))
        assert updated.n_symbols == 16
        assert np.isfinite(log_norm)


class TestTrainWorkItem:
    def _item(self, model, coded, iteration=1):
        return WorkItem(JobID('exon', model.n_states, 0, 1), iteration, model, 0.0, coded)

    def test_records_numbered_from_item_iteration(self, simple_model, simple_coded):
        results = list(train_work_item(self._item(simple_model, simple_coded, iteration=5),
                                       max_iterations=3, delta_thresh=0.0))
        assert [r.record.iteration for r in results] == [6, 7, 8]

    def test_max_iterations_finishes_session(self, simple_model, simple_coded):
        results = list(train_work_item(self._item(simple_model, simple_coded),
                                       max_iterations=4, delta_thresh=0.0))
        assert len(results) == 4
        assert [r.finished for r in results] == [False, False, False, True]
        assert not any(r.record.converged for r in results)

    def test_stops_at_convergence(self, simple_model, simple_coded):
        results = list(train_work_item(self._item(simple_model, simple_coded),
                                       max_iterations=500, delta_thresh=1e-3))
        last = results[-1].record
        assert last.converged is True
        assert last.score < 1e-3
        assert results[-1].finished
        assert all(not r.record.converged for r in results[:-1])

    def test_score_is_parameter_shift(self, simple_model, simple_coded):
        result = next(train_work_item(self._item(simple_model, simple_coded), max_iterations=1))
        expected = np.linalg.norm(simple_model.params_vector()
                                  - result.record.model.params_vector())
        np.testing.assert_allclose(result.record.score, expected)

    def test_invalid_max_iterations(self, simple_model, simple_coded):
        with pytest.raises(ValueError):
            list(train_work_item(self._item(simple_model, simple_coded), max_iterations=0))
