"""Bounded blocking work queues handed between schedulers and EM workers."""

import multiprocessing
import queue
from dataclasses import dataclass
from typing import Any, List, Optional

import numpy as np

from bghmm.core.hmm import BackgroundHMM
from bghmm.training.registry import IterationRecord, JobID


@dataclass
class WorkItem:
    """One chain handed to an EM worker: resume `model` from `iteration`."""
    job_id: JobID
    iteration: int
    model: BackgroundHMM
    log_norm: float
    coded_seqs: List[np.ndarray]


@dataclass
class TrainingResult:
    """One iterate returned by a worker. `finished` marks its last for the job."""
    job_id: JobID
    record: IterationRecord
    finished: bool


class WorkQueue:
    """
    Blocking put/take queue with optional capacity (0 = unbounded).

    With shared=True the queue lives in a multiprocessing manager so worker
    processes can consume it; `transport` is the picklable handle to pass them.
    """

    def __init__(self, capacity: int = 0, shared: bool = False):
        self.capacity = capacity
        self._manager = None
        if shared:
            self._manager = multiprocessing.Manager()
            self._queue = self._manager.Queue(capacity)
        else:
            self._queue = queue.Queue(capacity)

    @property
    def shared(self) -> bool:
        return self._manager is not None

    @property
    def transport(self):
        return self._queue

    def put(self, item: Any, timeout: Optional[float] = None):
        self._queue.put(item, block=True, timeout=timeout)

    def take(self, timeout: Optional[float] = None) -> Any:
        return self._queue.get(block=True, timeout=timeout)

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def drain(self) -> List[Any]:
        """Remove and return everything currently queued."""
        items = []
        while True:
            try:
                items.append(self._queue.get(block=False))
            except queue.Empty:
                return items

    def close(self):
        if self._manager is not None:
            self._manager.shutdown()
            self._manager = None
