"""
Order-N symbol coding for BGHMM.

A DNA sequence coded at markov order n becomes one integer symbol per
position: the bases at t-n..t read as base-4 digits (A=0, C=1, G=2, T=3),
the base at t being the least significant digit. The alphabet therefore has
4^(n+1) symbols.
"""

import numpy as np
from typing import List, Sequence


BASES = 'ACGT'
BASE_ALPHABET_SIZE = 4

_COMPLEMENT = str.maketrans('ACGTacgtNn', 'TGCAtgcaNn')


def _build_byte_table() -> np.ndarray:
    table = np.full(256, -1, dtype=np.int64)
    for digit, base in enumerate(BASES):
        table[ord(base)] = digit
        table[ord(base.lower())] = digit
    return table


class OrderEncoder:
    """
    Per-base digit table and order-n alphabet sizes.
    """
    _byte_table = _build_byte_table()

    @classmethod
    def digits(cls, seq: str) -> np.ndarray:
        """Map a DNA string to base digits, rejecting anything outside ACGT."""
        raw = np.frombuffer(seq.encode('ascii'), dtype=np.uint8)
        digits = cls._byte_table[raw]
        if np.any(digits < 0):
            bad = sorted({seq[i] for i in np.flatnonzero(digits < 0)})
            raise ValueError(f"Cannot code non-ACGT bases: {', '.join(bad)}")
        return digits

    @classmethod
    def codable(cls, seq: str) -> np.ndarray:
        """Boolean mask of the positions holding A, C, G or T."""
        raw = np.frombuffer(seq.encode('ascii'), dtype=np.uint8)
        return cls._byte_table[raw] >= 0

    @classmethod
    def get_n_codes(cls, order: int, base_alphabet_size: int = BASE_ALPHABET_SIZE) -> int:
        """Get number of symbols for an order."""
        if order < 0:
            raise ValueError(f"Markov order must be >= 0, got {order}")
        return base_alphabet_size ** (order + 1)


def order_from_symbol_count(n_symbols: int, base_alphabet_size: int = BASE_ALPHABET_SIZE) -> int:
    """Recover the markov order from an emission alphabet size."""
    order = 0
    size = base_alphabet_size
    while size < n_symbols:
        size *= base_alphabet_size
        order += 1
    if size != n_symbols:
        raise ValueError(
            f"{n_symbols} symbols is not a power of the base alphabet size {base_alphabet_size}"
        )
    return order


def code_sequence(seq: str, order: int) -> np.ndarray:
    """
    Code one DNA sequence at the given order.

    Output length equals input length. Positions within `order` bases of the
    5' end have their missing leading context digits taken as 0.
    """
    OrderEncoder.get_n_codes(order)
    digits = OrderEncoder.digits(seq)
    coded = digits.copy()
    for lag in range(1, order + 1):
        place = BASE_ALPHABET_SIZE ** lag
        coded[lag:] += digits[:-lag] * place
    return coded


def get_order_n_seqs(seqs: Sequence[str], order: int) -> List[np.ndarray]:
    """Code each sequence at `order`."""
    return [code_sequence(s, order) for s in seqs]


def code_seqs(seqs: Sequence[str], order: int, sorted: bool = False) -> List[np.ndarray]:
    """
    Code a set of sequences for training.

    Args:
        seqs: DNA strings
        order: Markov order
        sorted: If True, return coded sequences longest first

    Returns:
        List of int arrays, one per input sequence
    """
    coded = get_order_n_seqs(seqs, order)
    if sorted:
        coded.sort(key=len, reverse=True)
    return coded


def reverse_complement(seq: str) -> str:
    return seq.translate(_COMPLEMENT)[::-1]
