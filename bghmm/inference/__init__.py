"""Posterior symbol-likelihood decoding and fragment reassembly."""

from bghmm.inference.decoder import forward_backward, get_bghmm_symbol_lh
from bghmm.inference.assembler import (
    PARTITION_CODES,
    MASKED_CODE,
    Fragment,
    fragment_observation,
    fragment_observations_by_bghmm,
    decode_fragment,
    bghmm_likelihood_calc,
    mask_from_intervals,
    mask_uncodable_bases,
)

__all__ = [
    'forward_backward',
    'get_bghmm_symbol_lh',
    'PARTITION_CODES',
    'MASKED_CODE',
    'Fragment',
    'fragment_observation',
    'fragment_observations_by_bghmm',
    'decode_fragment',
    'bghmm_likelihood_calc',
    'mask_from_intervals',
    'mask_uncodable_bases',
]
