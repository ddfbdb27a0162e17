"""
Baum-Welch EM for BackgroundHMM chains.

em_step() performs one full EM update (start, transition and emission
probabilities) over a set of coded sequences. train_work_item() runs a chain
from a WorkItem until the parameter shift between successive iterates drops
below a threshold, yielding one TrainingResult per update.
"""

from typing import Iterator, List, Tuple

import numpy as np
from scipy.spatial.distance import euclidean
from scipy.special import logsumexp

from bghmm.core.hmm import (
    BackgroundHMM,
    log_likelihoods,
    messages_backwards_log,
    messages_forwards_log,
)
from bghmm.training.registry import IterationRecord
from bghmm.training.work_queue import TrainingResult, WorkItem

PROB_FLOOR = 1e-10


def _normalize_rows(counts: np.ndarray) -> np.ndarray:
    sums = counts.sum(axis=-1, keepdims=True)
    sums = np.where(sums == 0, 1, sums)
    probs = np.clip(counts / sums, PROB_FLOOR, 1.0)
    return probs / probs.sum(axis=-1, keepdims=True)


def _floored(model: BackgroundHMM) -> BackgroundHMM:
    # Prior draws over large alphabets underflow to exact zeros
    return BackgroundHMM(_normalize_rows(model.startprob_),
                         _normalize_rows(model.transmat_),
                         _normalize_rows(model.emissionprob_))


def em_step(model: BackgroundHMM, coded_seqs: List[np.ndarray]) -> Tuple[BackgroundHMM, float]:
    """
    One Baum-Welch update.

    Args:
        model: Current model
        coded_seqs: Coded training sequences

    Returns:
        (updated model, total log-likelihood of coded_seqs under `model`)
    """
    current = _floored(model)
    current._compute_log_probs()
    log_transmat = current._log_transmat

    K = current.n_states
    n_symbols = current.n_symbols
    start_counts = np.zeros(K)
    trans_counts = np.zeros((K, K))
    emit_counts = np.zeros((K, n_symbols))
    log_prob_total = 0.0

    for obs in coded_seqs:
        if len(obs) == 0:
            continue
        obs = np.asarray(obs, dtype=int)
        lls = log_likelihoods(current._log_emissionprob, obs)
        alpha = messages_forwards_log(current._log_startprob, log_transmat, lls)
        beta = messages_backwards_log(log_transmat, lls)
        log_prob = logsumexp(alpha[-1])
        log_prob_total += log_prob

        gamma = np.exp(alpha + beta - log_prob)
        start_counts += gamma[0]
        for k in range(K):
            emit_counts[k] += np.bincount(obs, weights=gamma[:, k], minlength=n_symbols)

        if len(obs) > 1:
            # log_xi[t, i, j] = alpha[t, i] + log a_ij + ll[t+1, j] + beta[t+1, j] - log P
            log_xi = (alpha[:-1, :, np.newaxis] + log_transmat[np.newaxis, :, :]
                      + (lls[1:] + beta[1:])[:, np.newaxis, :] - log_prob)
            trans_counts += np.exp(logsumexp(log_xi, axis=0))

    updated = BackgroundHMM(_normalize_rows(start_counts),
                            _normalize_rows(trans_counts),
                            _normalize_rows(emit_counts))
    return updated, float(log_prob_total)


def train_work_item(item: WorkItem, delta_thresh: float = 1e-3,
                    max_iterations: int = 1000) -> Iterator[TrainingResult]:
    """
    Advance one chain.

    Records are numbered from item.iteration + 1. The chain stops when the
    euclidean distance between successive parameter vectors falls below
    delta_thresh, or after max_iterations updates; the last result yielded
    is marked finished.
    """
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

    model = item.model
    iteration = item.iteration
    for step in range(max_iterations):
        new_model, log_norm = em_step(model, item.coded_seqs)
        score = float(euclidean(model.params_vector(), new_model.params_vector()))
        iteration += 1
        converged = score < delta_thresh
        record = IterationRecord(iteration, new_model, log_norm, score, converged)
        yield TrainingResult(item.job_id, record, converged or step == max_iterations - 1)
        if converged:
            return
        model = new_model
