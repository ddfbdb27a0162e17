"""
Prior draws used to seed new BGHMM training chains.

Transition rows come from Dirichlet priors with a heavy weight on the
self-transition, so freshly drawn models favour long contiguous runs of one
state. Emissions and initial state probabilities come from uninformative
symmetric Dirichlets.
"""

import numpy as np
from typing import Optional

from bghmm.core.hmm import BackgroundHMM
from bghmm.core.order_coding import BASE_ALPHABET_SIZE


def _rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def generate_transition_matrix(states: int, prior_dope: Optional[float] = None,
                               prior_background: float = 0.1,
                               rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Draw a (states x states) row-stochastic transition matrix.

    Row k is drawn from Dirichlet(alpha) where alpha is prior_background
    everywhere except prior_dope at index k.

    Args:
        states: Number of HMM states
        prior_dope: Self-transition concentration (default states * 250)
        prior_background: Concentration for every other transition
        rng: Random source
    """
    if states < 1:
        raise ValueError(f"Number of states must be >= 1, got {states}")
    if prior_dope is None:
        prior_dope = states * 250.0
    rng = _rng(rng)

    transition_matrix = np.zeros((states, states))
    for k in range(states):
        dirichlet_params = np.full(states, prior_background)
        dirichlet_params[k] = prior_dope
        transition_matrix[k] = rng.dirichlet(dirichlet_params)
    return transition_matrix


def generate_emission_dist(n_symbols: int, prior: Optional[np.ndarray] = None,
                           rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Draw one categorical emission distribution over n_symbols.

    The default prior is the uninformative symmetric Dirichlet with
    concentration 1/n_symbols per symbol.
    """
    if prior is None:
        prior = np.ones(n_symbols) / n_symbols
    prior = np.asarray(prior, dtype=float)
    if prior.shape != (n_symbols,):
        raise ValueError(f"Prior has shape {prior.shape}, expected ({n_symbols},)")
    return _rng(rng).dirichlet(prior)


def init_random_hmm(n_states: int, order: int,
                    base_alphabet_size: int = BASE_ALPHABET_SIZE,
                    rng: Optional[np.random.Generator] = None) -> BackgroundHMM:
    """
    Seed a new chain: uninformative start probabilities, prior transition
    matrix, and one emission distribution per state over
    base_alphabet_size^(order+1) symbols.
    """
    rng = _rng(rng)
    startprob = rng.dirichlet(np.ones(n_states) / n_states)
    transmat = generate_transition_matrix(n_states, rng=rng)
    n_symbols = int(base_alphabet_size ** (order + 1))
    emissionprob = np.array([generate_emission_dist(n_symbols, rng=rng)
                             for _ in range(n_states)])
    return BackgroundHMM(startprob, transmat, emissionprob)
