"""BGHMM EM worker processes and the driver that collects their results."""

import queue
import time
from concurrent.futures import ProcessPoolExecutor
from typing import Optional

from tqdm import tqdm

from bghmm.training.em import train_work_item
from bghmm.training.registry import JobRegistry
from bghmm.training.work_queue import TrainingResult, WorkQueue


def em_worker(input_queue, output_queue, delta_thresh: float = 1e-3,
              max_iterations: int = 1000) -> int:
    """
    Consume WorkItems until a None sentinel arrives.

    Every iterate is put on output_queue as a TrainingResult.

    Returns:
        Number of WorkItems processed
    """
    n_items = 0
    while True:
        item = input_queue.get()
        if item is None:
            return n_items
        for result in train_work_item(item, delta_thresh, max_iterations):
            output_queue.put(result)
        n_items += 1


class _Collector:
    """Appends worker results to the registry and checkpoints it."""

    def __init__(self, registry: JobRegistry, expected: int,
                 registry_path: Optional[str], checkpoint_every: int, verbose: bool):
        self.registry = registry
        self.expected = expected
        self.registry_path = registry_path
        self.checkpoint_every = checkpoint_every
        self.finished = 0
        self._since_checkpoint = 0
        self._pbar = tqdm(total=expected, desc="Training chains", disable=not verbose)

    @property
    def done(self) -> bool:
        return self.finished >= self.expected

    def handle(self, result: TrainingResult):
        self.registry.append(result.job_id, result.record)
        self._since_checkpoint += 1
        if result.finished:
            self.finished += 1
            self._pbar.update(1)
            self._pbar.set_postfix({'last': f'{result.job_id.partition} K={result.job_id.n_states} '
                                            f'o={result.job_id.order} r={result.job_id.replicate}'})
        if self.registry_path and self._since_checkpoint >= self.checkpoint_every:
            self.checkpoint()

    def checkpoint(self):
        if self.registry_path:
            self.registry.save(self.registry_path)
        self._since_checkpoint = 0

    def close(self):
        self.checkpoint()
        self._pbar.close()


def train_chains(registry: JobRegistry, work_queue: WorkQueue, expected: int,
                 n_workers: int = 1, delta_thresh: float = 1e-3,
                 max_iterations: int = 1000, registry_path: Optional[str] = None,
                 checkpoint_every: int = 100, poll_interval: float = 1.0,
                 verbose: bool = False) -> int:
    """
    Train every queued chain and record the iterates in the registry.

    Args:
        registry: Chain store the scheduler populated
        work_queue: Queue the scheduler filled
        expected: Job count returned by the scheduler
        n_workers: Worker processes; <= 1 trains in this process
        delta_thresh: Convergence threshold on parameter shift
        max_iterations: EM updates per chain in this session
        registry_path: If given, the registry is saved here every
            checkpoint_every records and at the end
        poll_interval: Seconds between liveness checks on worker processes

    Returns:
        Number of jobs finished
    """
    collector = _Collector(registry, expected, registry_path, checkpoint_every, verbose)
    try:
        if n_workers <= 1:
            for item in work_queue.drain():
                for result in train_work_item(item, delta_thresh, max_iterations):
                    collector.handle(result)
            return collector.finished

        if not work_queue.shared:
            raise ValueError("Multi-process training needs a WorkQueue created with shared=True")

        output = WorkQueue(shared=True)
        try:
            with ProcessPoolExecutor(max_workers=n_workers) as executor:
                futures = [executor.submit(em_worker, work_queue.transport, output.transport,
                                           delta_thresh, max_iterations)
                           for _ in range(n_workers)]
                start_time = time.time()
                try:
                    while not collector.done:
                        try:
                            collector.handle(output.take(timeout=poll_interval))
                        except queue.Empty:
                            for future in futures:
                                if future.done():
                                    future.result()  # re-raise worker errors
                            if all(f.done() for f in futures):
                                raise RuntimeError(
                                    f"All workers exited with {collector.finished}/{expected} "
                                    f"jobs finished after {time.time() - start_time:.0f}s"
                                )
                except BaseException:
                    work_queue.drain()
                    raise
                finally:
                    for _ in futures:
                        work_queue.put(None)
        finally:
            output.close()
        return collector.finished
    finally:
        collector.close()
