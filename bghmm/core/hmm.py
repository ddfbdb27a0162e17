"""
BGHMM HMM module

Provides:
1. BackgroundHMM, a K-state categorical HMM over order-coded DNA symbols
2. Log-space forward and backward message recursions shared by training
   and decoding

Model I/O (load/save) lives in bghmm.core.model_io.
"""

import numpy as np
from typing import Optional, Tuple, Dict, Any
from scipy.special import logsumexp


# =============================================================================
# Log-space message recursions
# =============================================================================

def log_likelihoods(log_emissionprob: np.ndarray, obs: np.ndarray) -> np.ndarray:
    """
    Log emission likelihood of each observed symbol under each state.

    Args:
        log_emissionprob: (K, n_symbols) log emission probabilities
        obs: Coded sequence (int array, length T)

    Returns:
        (T, K) array, entry [t, k] = log P(obs[t] | state k)
    """
    return log_emissionprob[:, obs].T


def messages_forwards_log(log_startprob: np.ndarray, log_transmat: np.ndarray,
                          lls: np.ndarray) -> np.ndarray:
    """
    Forward algorithm in log space for a K-state HMM.

    Args:
        log_startprob: (K,) log initial state probabilities
        log_transmat: (K, K) log transition matrix, rows = from-state
        lls: (T, K) log emission likelihoods

    Returns:
        alpha: (T, K) forward messages
    """
    T, K = lls.shape
    alpha = np.empty((T, K))

    with np.errstate(divide='ignore', invalid='ignore'):
        alpha[0] = log_startprob + lls[0]
        for t in range(1, T):
            alpha[t] = logsumexp(alpha[t - 1][:, np.newaxis] + log_transmat, axis=0) + lls[t]

    return alpha


def messages_backwards_log(log_transmat: np.ndarray, lls: np.ndarray) -> np.ndarray:
    """
    Backward algorithm in log space for a K-state HMM.

    Returns:
        beta: (T, K) backward messages, beta[T-1] = 0
    """
    T, K = lls.shape
    beta = np.empty((T, K))
    beta[-1] = 0.0

    with np.errstate(divide='ignore', invalid='ignore'):
        for t in range(T - 2, -1, -1):
            beta[t] = logsumexp(log_transmat + (lls[t + 1] + beta[t + 1])[np.newaxis, :], axis=1)

    return beta


def _safe_log(a: np.ndarray) -> np.ndarray:
    with np.errstate(divide='ignore'):  # log(0) -> -inf
        return np.log(a)


class BackgroundHMM:
    """
    Categorical HMM describing background composition of one genome partition.

    Each of the K states emits order-coded symbols from an alphabet of
    base_alphabet_size^(order+1) symbols. Probabilities are stored in linear
    space; log versions are cached on demand.
    """

    def __init__(self, startprob: Optional[np.ndarray] = None,
                 transmat: Optional[np.ndarray] = None,
                 emissionprob: Optional[np.ndarray] = None):
        self.startprob_ = None if startprob is None else np.asarray(startprob, dtype=float)
        self.transmat_ = None if transmat is None else np.asarray(transmat, dtype=float)
        self.emissionprob_ = None if emissionprob is None else np.asarray(emissionprob, dtype=float)

        self._log_startprob: Optional[np.ndarray] = None
        self._log_transmat: Optional[np.ndarray] = None
        self._log_emissionprob: Optional[np.ndarray] = None

    @property
    def n_states(self) -> int:
        return len(self.startprob_)

    @property
    def n_symbols(self) -> int:
        return self.emissionprob_.shape[1]

    @property
    def order(self) -> int:
        from bghmm.core.order_coding import order_from_symbol_count
        return order_from_symbol_count(self.n_symbols)

    def log_params(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Log-space (startprob, transmat, emissionprob), leaving the model untouched."""
        return (_safe_log(self.startprob_), _safe_log(self.transmat_),
                _safe_log(self.emissionprob_))

    def _compute_log_probs(self):
        """Convert probabilities to log space."""
        self._log_startprob, self._log_transmat, self._log_emissionprob = self.log_params()

    def _forward(self, obs: np.ndarray) -> Tuple[np.ndarray, float]:
        """
        Forward pass over one coded sequence.

        Returns:
            alpha: Forward messages (T x K)
            log_prob: Log probability of observation sequence
        """
        lls = log_likelihoods(self._log_emissionprob, obs)
        alpha = messages_forwards_log(self._log_startprob, self._log_transmat, lls)
        return alpha, float(logsumexp(alpha[-1]))

    def score(self, X) -> float:
        """
        Compute log probability of one coded sequence, or the summed log
        probability of a list of them.
        """
        self._compute_log_probs()
        if isinstance(X, np.ndarray):
            X = [X]
        total = 0.0
        for obs in X:
            if len(obs) == 0:
                continue
            _, log_prob = self._forward(np.asarray(obs, dtype=int))
            total += log_prob
        return total

    def params_vector(self) -> np.ndarray:
        """All parameters flattened into one vector (start, transitions, emissions)."""
        return np.concatenate([self.startprob_.ravel(),
                               self.transmat_.ravel(),
                               self.emissionprob_.ravel()])

    def copy(self) -> 'BackgroundHMM':
        return BackgroundHMM(self.startprob_.copy(), self.transmat_.copy(),
                             self.emissionprob_.copy())

    def to_dict(self) -> Dict[str, Any]:
        """Serialize model to dictionary."""
        return {
            'n_states': self.n_states,
            'startprob': self.startprob_.tolist(),
            'transmat': self.transmat_.tolist(),
            'emissionprob': self.emissionprob_.tolist(),
            'model_type': 'BackgroundHMM',
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'BackgroundHMM':
        """Deserialize model from dictionary."""
        for key in ('startprob', 'transmat', 'emissionprob'):
            if d.get(key) is None:
                raise ValueError(f"Model dictionary is missing '{key}'")
        return cls(np.array(d['startprob']), np.array(d['transmat']),
                   np.array(d['emissionprob']))

    def __repr__(self) -> str:
        if self.startprob_ is None:
            return 'BackgroundHMM()'
        return f'BackgroundHMM(n_states={self.n_states}, n_symbols={self.n_symbols})'

