"""
BGHMM training-job scheduling.

Two phases populate the work queue consumed by EM workers:

- survey: every (replicate, order, n_states, partition) combination, to find a
  good configuration per partition
- global search: more replicates of the one chosen (n_states, order) per
  partition, under a stricter convergence bar

Both resume whatever the registry already holds: converged chains are
skipped, unconverged chains are requeued from their last iterate, and only
unseen jobs are seeded from the priors.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from bghmm.core.order_coding import BASE_ALPHABET_SIZE, code_seqs
from bghmm.core.priors import init_random_hmm
from bghmm.training.registry import JobID, JobRegistry
from bghmm.training.work_queue import WorkItem, WorkQueue


def _queue_job(job_id: JobID, registry: JobRegistry, work_queue: WorkQueue,
               coded: List[np.ndarray], base_alphabet_size: int,
               rng: np.random.Generator) -> bool:
    """
    Requeue or seed one job.

    Returns:
        False if the job's chain has already converged (nothing queued)
    """
    if registry.has_chain(job_id):
        last = registry.last(job_id)
        if last.converged:
            return False
        work_queue.put(WorkItem(job_id, last.iteration, last.model, last.log_norm, coded))
    else:
        model = init_random_hmm(job_id.n_states, job_id.order,
                                base_alphabet_size=base_alphabet_size, rng=rng)
        registry.register(job_id)
        work_queue.put(WorkItem(job_id, 1, model, 0.0, coded))
    return True


def _needs_training(job_id: JobID, registry: JobRegistry,
                    search_thresh: Optional[float] = None) -> bool:
    """True if setup will put a WorkItem on the queue for job_id."""
    if not registry.has_chain(job_id):
        return True
    last = registry.last(job_id)
    if not last.converged:
        return True
    return search_thresh is not None and last.score > search_thresh


def _check_capacity(work_queue: WorkQueue, n_items: int):
    """
    Setup fills the queue before any worker consumes it, so a bounded queue
    must hold every item at once.
    """
    if work_queue.capacity and work_queue.qsize() + n_items > work_queue.capacity:
        raise ValueError(
            f"{n_items} jobs to queue but the work queue holds at most "
            f"{work_queue.capacity} items ({work_queue.qsize()} already queued)"
        )


def hmm_survey_setup(order_nos: Sequence[int], Ks: Sequence[int], replicates: int,
                     registry: JobRegistry, work_queue: WorkQueue,
                     training_sets: Dict[str, Sequence[str]],
                     base_alphabet_size: int = BASE_ALPHABET_SIZE,
                     rng: Optional[np.random.Generator] = None,
                     verbose: bool = False) -> int:
    """
    Queue survey-phase jobs.

    Args:
        order_nos: Markov orders to survey
        Ks: State counts to survey
        replicates: Replicate chains per configuration
        registry: Chain store, mutated in place
        work_queue: Destination for WorkItems
        training_sets: partition -> training sequences
        base_alphabet_size: Size of the unencoded alphabet
        rng: Random source for new chains

    Returns:
        Number of jobs the caller should expect back from the workers

    Raises:
        ValueError: if work_queue is bounded and cannot hold every queued job
    """
    rng = rng if rng is not None else np.random.default_rng()
    expected = len(Ks) * len(order_nos) * replicates * len(training_sets)

    job_ids = [JobID(partition_id, int(K), int(order_no), i)
               for i in range(1, replicates + 1)
               for order_no in order_nos
               for K in Ks
               for partition_id in training_sets]
    _check_capacity(work_queue, sum(_needs_training(j, registry) for j in job_ids))

    code_dict: Dict[Tuple[str, int], List[np.ndarray]] = {}
    for order_no in tqdm(order_nos, desc="Encoding observations", disable=not verbose):
        for partition_id, partition in training_sets.items():
            code_dict[(partition_id, order_no)] = code_seqs(partition, order_no, sorted=True)

    for job_id in tqdm(job_ids, desc="Setting up HMMs", disable=not verbose):
        if not _queue_job(job_id, registry, work_queue,
                          code_dict[(job_id.partition, job_id.order)],
                          base_alphabet_size, rng):
            expected -= 1

    return expected


def hmm_global_search_params(registry: JobRegistry) -> Dict[str, Tuple[int, int]]:
    """
    The single (n_states, order) configuration of each partition in the registry.

    Raises:
        ValueError: if any partition holds chains of more than one configuration
    """
    params_dict: Dict[str, Tuple[int, int]] = {}
    for job_id in registry:
        params = (job_id.n_states, job_id.order)
        known = params_dict.setdefault(job_id.partition, params)
        if known != params:
            raise ValueError(
                f"More than one state number or order for partition '{job_id.partition}': "
                f"{known} and {params}"
            )
    return params_dict


def hmm_global_search_setup(registry: JobRegistry, params_dict: Dict[str, Tuple[int, int]],
                            search_replicates: int, search_thresh: float,
                            work_queue: WorkQueue,
                            training_sets: Dict[str, Sequence[str]],
                            base_alphabet_size: int = BASE_ALPHABET_SIZE,
                            rng: Optional[np.random.Generator] = None,
                            verbose: bool = False) -> int:
    """
    Queue global-search jobs for the chosen configuration of each partition.

    Chains that converged under a looser bar (last score > search_thresh) are
    reopened and requeued.

    Returns:
        Number of jobs the caller should expect back from the workers
    """
    rng = rng if rng is not None else np.random.default_rng()
    expected = search_replicates * len(params_dict)

    missing = set(params_dict) - set(training_sets)
    if missing:
        raise ValueError(f"No training sequences for partition(s): {', '.join(sorted(missing))}")

    job_ids = [JobID(partition_id, K, order_no, replicate)
               for partition_id, (K, order_no) in params_dict.items()
               for replicate in range(1, search_replicates + 1)]
    _check_capacity(work_queue, sum(_needs_training(j, registry, search_thresh)
                                    for j in job_ids))

    code_dict: Dict[str, List[np.ndarray]] = {}
    for partition_id in tqdm(params_dict, desc="Encoding observations", disable=not verbose):
        _, order_no = params_dict[partition_id]
        code_dict[partition_id] = code_seqs(training_sets[partition_id], order_no, sorted=True)

    for job_id in tqdm(job_ids, desc="Setting up HMMs", disable=not verbose):
        if registry.has_chain(job_id):
            last = registry.last(job_id)
            if last.converged and last.score > search_thresh:
                registry.reopen(job_id)
        if not _queue_job(job_id, registry, work_queue, code_dict[job_id.partition],
                          base_alphabet_size, rng):
            expected -= 1

    return expected
