"""BGHMM per-position symbol likelihoods by forward-backward posterior decoding."""

import numpy as np
from scipy.special import logsumexp

from bghmm.core.hmm import (
    BackgroundHMM,
    log_likelihoods,
    messages_backwards_log,
    messages_forwards_log,
)


def forward_backward(model: BackgroundHMM, coded_seq: np.ndarray):
    """
    Log-space forward and backward messages for one coded sequence.

    A boundary position with log-likelihood 0 in every state is appended
    to terminate the recursions; it is included in the returned arrays.

    Returns:
        (lls, log_alpha, log_beta), each (T+1, K)
    """
    log_startprob, log_transmat, log_emissionprob = model.log_params()
    obs = np.asarray(coded_seq, dtype=int)
    lls = log_likelihoods(log_emissionprob, obs)
    lls = np.vstack([lls, np.zeros((1, model.n_states))])

    log_alpha = messages_forwards_log(log_startprob, log_transmat, lls)
    log_beta = messages_backwards_log(log_transmat, lls)
    return lls, log_alpha, log_beta


def get_bghmm_symbol_lh(coded_seq: np.ndarray, model: BackgroundHMM) -> np.ndarray:
    """
    Log-likelihood of each observed symbol marginalised over the posterior
    state distribution at its position.

    Args:
        coded_seq: Coded sequence (int array, length T)
        model: Trained BackgroundHMM at the sequence's order

    Returns:
        (T,) float array of log-likelihoods. Zero-probability paths come
        back as -inf rather than raising.
    """
    T = len(coded_seq)
    if T == 0:
        return np.array([], dtype=float)

    obs = np.asarray(coded_seq, dtype=int)
    lls, log_alpha, log_beta = forward_backward(model, obs)

    with np.errstate(divide='ignore', invalid='ignore'):
        log_pobs = logsumexp(log_alpha[0] + log_beta[0])
        log_gamma = log_alpha[:T] + log_beta[:T] - log_pobs
        state_symbol_lh = log_gamma + lls[:T]
        symbol_lh = logsumexp(state_symbol_lh, axis=1)

    if not np.isfinite(log_pobs):
        # No posterior mass anywhere; every position is impossible
        return np.full(T, -np.inf)
    return symbol_lh
