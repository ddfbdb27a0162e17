"""
Resumable store of BGHMM training chains.

Every training job is keyed by a JobID (partition, n_states, order,
replicate) and owns an append-only chain of IterationRecords. Only the last
record of a chain is consulted when a run is resumed.
"""

import json
import os
import tempfile
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, NamedTuple, Optional, Set, Tuple

from bghmm.core.hmm import BackgroundHMM


class JobID(NamedTuple):
    partition: str
    n_states: int
    order: int
    replicate: int


@dataclass(frozen=True)
class IterationRecord:
    """One EM iterate of a training chain."""
    iteration: int
    model: BackgroundHMM
    log_norm: float
    score: float
    converged: bool

    def to_dict(self) -> dict:
        return {
            'iteration': self.iteration,
            'model': self.model.to_dict(),
            'log_norm': self.log_norm,
            'score': self.score,
            'converged': self.converged,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'IterationRecord':
        return cls(
            iteration=int(d['iteration']),
            model=BackgroundHMM.from_dict(d['model']),
            log_norm=float(d['log_norm']),
            score=float(d['score']),
            converged=bool(d['converged']),
        )


class JobRegistry:
    """
    Mapping JobID -> chain of IterationRecords.

    Chains are append-only. The one exception is reopen(), which clears the
    converged flag on a chain's last record so it can be trained further.
    """

    def __init__(self):
        self._chains: Dict[JobID, List[IterationRecord]] = {}

    def __contains__(self, job_id: JobID) -> bool:
        return job_id in self._chains

    def __len__(self) -> int:
        return len(self._chains)

    def __iter__(self) -> Iterator[JobID]:
        return iter(self._chains)

    def items(self) -> Iterator[Tuple[JobID, List[IterationRecord]]]:
        for job_id, chain in self._chains.items():
            yield job_id, list(chain)

    def has_chain(self, job_id: JobID) -> bool:
        """True if a non-empty chain is stored for job_id."""
        return len(self._chains.get(job_id, ())) > 0

    def chain(self, job_id: JobID) -> List[IterationRecord]:
        return list(self._chains[job_id])

    def last(self, job_id: JobID) -> IterationRecord:
        chain = self._chains.get(job_id)
        if not chain:
            raise KeyError(f"No iterations recorded for {job_id}")
        return chain[-1]

    def register(self, job_id: JobID):
        """Start an empty chain for a new job."""
        if self.has_chain(job_id):
            raise ValueError(f"Chain for {job_id} already holds iterations")
        self._chains[job_id] = []

    def append(self, job_id: JobID, record: IterationRecord):
        chain = self._chains.setdefault(job_id, [])
        if chain and record.iteration <= chain[-1].iteration:
            raise ValueError(
                f"Iteration {record.iteration} for {job_id} does not follow "
                f"iteration {chain[-1].iteration}"
            )
        chain.append(record)

    def reopen(self, job_id: JobID):
        """Clear the converged flag of the chain's last record."""
        last = self.last(job_id)
        self._chains[job_id][-1] = replace(last, converged=False)

    def partitions(self) -> Set[str]:
        return {job_id.partition for job_id in self._chains}

    def restrict(self, params: Dict[str, Tuple[int, int]]) -> 'JobRegistry':
        """
        New registry holding only chains whose (n_states, order) matches
        params[partition]. Records are shared, not copied.
        """
        restricted = JobRegistry()
        for job_id, chain in self._chains.items():
            if params.get(job_id.partition) == (job_id.n_states, job_id.order):
                restricted._chains[job_id] = list(chain)
        return restricted

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            'model_type': 'BGHMM_registry',
            'version': '1.0',
            'jobs': [
                {'job_id': list(job_id), 'chain': [r.to_dict() for r in chain]}
                for job_id, chain in self._chains.items()
            ],
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'JobRegistry':
        if d.get('model_type') != 'BGHMM_registry':
            raise ValueError("Not a BGHMM job registry")
        registry = cls()
        for entry in d['jobs']:
            partition, n_states, order, replicate = entry['job_id']
            job_id = JobID(str(partition), int(n_states), int(order), int(replicate))
            registry._chains[job_id] = [IterationRecord.from_dict(r) for r in entry['chain']]
        return registry

    def save(self, filepath: str):
        """Write the registry as JSON, replacing filepath atomically."""
        directory = os.path.dirname(os.path.abspath(filepath))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(self.to_dict(), f)
            os.replace(tmp_path, filepath)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    @classmethod
    def load(cls, filepath: Optional[str]) -> 'JobRegistry':
        """Load a saved registry; a missing file gives an empty registry."""
        if filepath is None or not os.path.exists(filepath):
            return cls()
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))
