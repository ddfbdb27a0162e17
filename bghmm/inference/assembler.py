"""
Fragment-and-reassemble scoring of annotated sequences with BGHMM models.

Each observation sequence carries a per-base (partition code, strand) mask.
Maximal runs of constant (partition, strand) become Fragments; negative-strand
fragments are reverse-complemented before decoding and their likelihoods are
reversed back afterwards, so every result lands in original 5'->3' order in a
(position x observation) matrix.
"""

from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from bghmm.core.model_io import FinalizedModelMap
from bghmm.core.order_coding import OrderEncoder, code_sequence, reverse_complement
from bghmm.inference.decoder import get_bghmm_symbol_lh

PARTITION_CODES: Dict[int, str] = {1: 'exon', 2: 'periexonic', 3: 'intergenic'}
STRAND_CODES: Dict[str, int] = {'+': 1, '-': -1, '.': 0}

# Partition code for bases that are never scored (N and other ambiguity codes)
MASKED_CODE = 0

OBSERVATION_COLUMNS = ['sequence', 'mask', 'offset']


@dataclass(frozen=True)
class Fragment:
    """A maximal same-(partition, strand) run of one observation."""
    offset: int
    start: int  # 0-based position within the observation
    observation: int
    partition: int
    strand: int
    sequence: str  # canonical orientation (reverse-complemented if strand == -1)

    def __len__(self) -> int:
        return len(self.sequence)


def fragment_observation(seq: str, mask: np.ndarray, offset: int = 0,
                         observation: int = 0) -> List[Fragment]:
    """
    Split one observation into Fragments.

    Args:
        seq: Observation sequence
        mask: (len(seq), 2) int array of (partition code, strand) per base
        offset: Row offset of this observation in the likelihood matrix
        observation: Column index of this observation

    Returns:
        Fragments in positional order; together they cover seq exactly
    """
    mask = np.asarray(mask)
    if mask.shape != (len(seq), 2):
        raise ValueError(
            f"Observation {observation}: mask shape {mask.shape} does not match "
            f"sequence length {len(seq)}"
        )
    if len(seq) == 0:
        return []

    boundaries = np.flatnonzero(np.any(mask[1:] != mask[:-1], axis=1)) + 1
    starts = np.concatenate([[0], boundaries])
    ends = np.concatenate([boundaries, [len(seq)]])

    fragments = []
    for start, end in zip(starts, ends):
        partition, strand = int(mask[start, 0]), int(mask[start, 1])
        frag = seq[start:end]
        if strand == -1:
            frag = reverse_complement(frag)
        fragments.append(Fragment(int(offset), int(start), int(observation),
                                  partition, strand, frag))
    return fragments


def _check_observations(observations: pd.DataFrame):
    missing = [c for c in OBSERVATION_COLUMNS if c not in observations.columns]
    if missing:
        raise ValueError(f"Observation table is missing column(s): {', '.join(missing)}")


def fragment_observations_by_bghmm(observations: pd.DataFrame,
                                   verbose: bool = False) -> List[Fragment]:
    """Fragment every observation (columns: sequence, mask, offset)."""
    _check_observations(observations)
    fragments = []
    rows = zip(observations['sequence'], observations['mask'], observations['offset'])
    for o, (seq, mask, offset) in enumerate(tqdm(rows, total=len(observations),
                                                 desc="Fragmenting observations by partition",
                                                 disable=not verbose)):
        fragments.extend(fragment_observation(seq, mask, offset, o))
    return fragments


def decode_fragment(fragment: Fragment, model_map: FinalizedModelMap,
                    code_partition_dict: Optional[Dict[int, str]] = None) -> np.ndarray:
    """
    Per-position log-likelihoods of one fragment under its partition's model,
    in original-strand order.
    """
    if fragment.partition == MASKED_CODE:
        return np.zeros(len(fragment))
    code_partition_dict = code_partition_dict or PARTITION_CODES
    if fragment.partition not in code_partition_dict:
        raise ValueError(f"Unknown partition code {fragment.partition}")
    label = code_partition_dict[fragment.partition]
    if label not in model_map:
        raise ValueError(f"No model for partition '{label}'")

    model, order, _ = model_map[label]
    coded = code_sequence(fragment.sequence, order)
    symbol_lh = get_bghmm_symbol_lh(coded, model)
    if fragment.strand == -1:
        symbol_lh = symbol_lh[::-1]
    return symbol_lh


# Globals for worker processes
_worker_model_map = None
_worker_code_partition_dict = None


def _init_decode_worker(model_map: FinalizedModelMap, code_partition_dict: Dict[int, str]):
    """Initialize worker process with the model map."""
    global _worker_model_map, _worker_code_partition_dict
    _worker_model_map = model_map
    _worker_code_partition_dict = code_partition_dict


def _decode_fragment_worker(fragment: Fragment) -> np.ndarray:
    return decode_fragment(fragment, _worker_model_map, _worker_code_partition_dict)


def bghmm_likelihood_calc(observations: pd.DataFrame, model_map: FinalizedModelMap,
                          code_partition_dict: Optional[Dict[int, str]] = None,
                          n_workers: int = 1, chunksize: int = 64,
                          verbose: bool = False) -> np.ndarray:
    """
    Score every base of every observation under its partition's model.

    Args:
        observations: DataFrame with columns sequence, mask, offset
        model_map: partition label -> (model, order, score)
        code_partition_dict: mask partition code -> partition label
        n_workers: Processes used for decoding fragments

    Returns:
        (n_positions, n_observations) matrix of log-likelihoods, where
        n_positions = max(offset + len(sequence)). Fragment results are
        written at rows offset + fragment start; uncovered cells stay 0.
    """
    code_partition_dict = code_partition_dict or PARTITION_CODES
    _check_observations(observations)

    n_positions = max((int(off) + len(seq) for seq, off
                       in zip(observations['sequence'], observations['offset'])), default=0)
    lh_matrix = np.zeros((n_positions, len(observations)))

    fragments = fragment_observations_by_bghmm(observations, verbose=verbose)

    if n_workers <= 1:
        results = (decode_fragment(f, model_map, code_partition_dict) for f in fragments)
        _scatter(lh_matrix, fragments, results, verbose)
    else:
        with ProcessPoolExecutor(max_workers=n_workers,
                                 initializer=_init_decode_worker,
                                 initargs=(model_map, code_partition_dict)) as executor:
            results = executor.map(_decode_fragment_worker, fragments, chunksize=chunksize)
            _scatter(lh_matrix, fragments, results, verbose)

    return lh_matrix


def _scatter(lh_matrix: np.ndarray, fragments: List[Fragment], results, verbose: bool):
    for fragment, symbol_lh in tqdm(zip(fragments, results), total=len(fragments),
                                    desc="Writing frags to matrix", disable=not verbose):
        row = fragment.offset + fragment.start
        lh_matrix[row:row + len(fragment), fragment.observation] = symbol_lh


def mask_from_intervals(length: int, intervals: pd.DataFrame,
                        default_partition: str = 'intergenic',
                        code_partition_dict: Optional[Dict[int, str]] = None) -> np.ndarray:
    """
    Build a (length, 2) partition/strand mask from annotation intervals.

    Args:
        length: Sequence length
        intervals: DataFrame with columns start, end (0-based, end-exclusive),
            partition (label) and strand ('+', '-' or '.'). Later rows
            overwrite earlier ones where they overlap.
        default_partition: Label for bases no interval covers (unstranded)

    Returns:
        int array, column 0 = partition code, column 1 = strand code
    """
    code_partition_dict = code_partition_dict or PARTITION_CODES
    label_codes = {label: code for code, label in code_partition_dict.items()}
    if default_partition not in label_codes:
        raise ValueError(f"Unknown partition '{default_partition}'")

    mask = np.zeros((length, 2), dtype=np.int64)
    mask[:, 0] = label_codes[default_partition]

    for row in intervals.itertuples(index=False):
        if row.partition not in label_codes:
            raise ValueError(f"Unknown partition '{row.partition}'")
        if row.strand not in STRAND_CODES:
            raise ValueError(f"Unknown strand '{row.strand}'")
        start, end = int(row.start), int(row.end)
        if start < 0 or end > length or start >= end:
            raise ValueError(f"Interval {start}-{end} is outside a sequence of length {length}")
        mask[start:end, 0] = label_codes[row.partition]
        mask[start:end, 1] = STRAND_CODES[row.strand]
    return mask


def mask_uncodable_bases(seq: str, mask: np.ndarray) -> np.ndarray:
    """
    Copy of mask with every non-ACGT base set to (MASKED_CODE, unstranded).

    Masked runs become their own fragments and are left at 0 in the
    likelihood matrix.
    """
    mask = np.array(mask, copy=True)
    if mask.shape != (len(seq), 2):
        raise ValueError(f"Mask shape {mask.shape} does not match sequence length {len(seq)}")
    uncodable = ~OrderEncoder.codable(seq)
    mask[uncodable, 0] = MASKED_CODE
    mask[uncodable, 1] = STRAND_CODES['.']
    return mask
