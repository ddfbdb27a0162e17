"""
Sample splitting and model selection for BGHMM.

Trained chains are ranked by the log-likelihood their last model assigns to
the held-out test sequences of their partition.
"""

from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from bghmm.core.model_io import FinalizedModelMap
from bghmm.core.order_coding import code_seqs
from bghmm.training.registry import JobID, JobRegistry

SAMPLE_COLUMNS = ['partition', 'start', 'end', 'sequence']


def split_obs_sets(samples: pd.DataFrame) -> Tuple[Dict[str, List[str]], Dict[str, List[str]]]:
    """
    Split each partition's samples into training and test sets of roughly
    equal total length.

    Samples keep their table order. The test set starts at the first sample
    whose cumulative length exceeds half the partition's total length.

    Args:
        samples: DataFrame with columns partition, start, end, sequence
            (1-based inclusive coordinates)

    Returns:
        (training_sets, test_sets), each partition -> list of sequences
    """
    missing = [c for c in SAMPLE_COLUMNS if c not in samples.columns]
    if missing:
        raise ValueError(f"Sample table is missing column(s): {', '.join(missing)}")

    training_sets: Dict[str, List[str]] = {}
    test_sets: Dict[str, List[str]] = {}

    for partition_id, partition in samples.groupby('partition', sort=False):
        lengths = (partition['end'] - partition['start'] + 1).to_numpy()
        midway = lengths.sum() // 2
        split_index = int(np.argmax(np.cumsum(lengths) > midway))
        seqs = partition['sequence'].tolist()
        training_sets[str(partition_id)] = seqs[:split_index]
        test_sets[str(partition_id)] = seqs[split_index:]

    return training_sets, test_sets


def score_chain_models(registry: JobRegistry, test_sets: Dict[str, Sequence[str]],
                       converged_only: bool = True,
                       verbose: bool = False) -> Dict[JobID, float]:
    """
    Test-set log-likelihood of the last model of every chain.

    Test sequences are coded once per (partition, order).
    """
    code_dict = {}
    scores = {}
    for job_id in tqdm(list(registry), desc="Scoring chains", disable=not verbose):
        if not registry.has_chain(job_id):
            continue
        last = registry.last(job_id)
        if converged_only and not last.converged:
            continue
        if job_id.partition not in test_sets:
            raise ValueError(f"No test sequences for partition '{job_id.partition}'")
        key = (job_id.partition, job_id.order)
        if key not in code_dict:
            code_dict[key] = code_seqs(test_sets[job_id.partition], job_id.order)
        scores[job_id] = last.model.score(code_dict[key])
    return scores


def _best_jobs(scores: Dict[JobID, float], partitions) -> Dict[str, Tuple[JobID, float]]:
    best: Dict[str, Tuple[JobID, float]] = {}
    for job_id, score in scores.items():
        if job_id.partition not in best or score > best[job_id.partition][1]:
            best[job_id.partition] = (job_id, score)
    missing = set(partitions) - set(best)
    if missing:
        raise ValueError(f"No converged chains for partition(s): {', '.join(sorted(missing))}")
    return best


def best_survey_params(registry: JobRegistry, test_sets: Dict[str, Sequence[str]],
                       verbose: bool = False) -> Dict[str, Tuple[int, int]]:
    """
    The (n_states, order) of the best converged chain in each partition.
    """
    scores = score_chain_models(registry, test_sets, verbose=verbose)
    best = _best_jobs(scores, registry.partitions())
    return {partition: (job_id.n_states, job_id.order)
            for partition, (job_id, _) in best.items()}


def finalize_models(registry: JobRegistry, test_sets: Dict[str, Sequence[str]],
                    verbose: bool = False) -> FinalizedModelMap:
    """
    Build the model map used for decoding: for each partition, the last model
    of its best converged chain, with its order and test-set score.
    """
    scores = score_chain_models(registry, test_sets, verbose=verbose)
    best = _best_jobs(scores, registry.partitions())
    return {partition: (registry.last(job_id).model, job_id.order, score)
            for partition, (job_id, score) in best.items()}
