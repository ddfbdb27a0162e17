"""
Tests for bghmm.training.worker (EM consumers and the collecting driver).
"""
import queue

import pytest
import numpy as np

from bghmm.training.registry import JobID, JobRegistry
from bghmm.training.scheduler import hmm_survey_setup
from bghmm.training.work_queue import WorkItem, WorkQueue
from bghmm.training.worker import em_worker, train_chains


@pytest.fixture
def training_sets(simple_sequences):
    return {'exon': simple_sequences}


class TestEMWorker:
    def test_consumes_until_sentinel(self, simple_model, simple_coded):
        input_queue, output_queue = queue.Queue(), queue.Queue()
        for replicate in (1, 2):
            input_queue.put(WorkItem(JobID('exon', 2, 0, replicate), 1, simple_model, 0.0,
                                     simple_coded))
        input_queue.put(None)

        n_items = em_worker(input_queue, output_queue, delta_thresh=0.0, max_iterations=3)

        assert n_items == 2
        results = []
        while not output_queue.empty():
            results.append(output_queue.get())
        assert len(results) == 6
        assert sum(r.finished for r in results) == 2


class TestTrainChains:
    def test_in_process_training(self, training_sets, rng, tmp_path):
        registry = JobRegistry()
        work_queue = WorkQueue()
        expected = hmm_survey_setup([0, 1], [1, 2], 1, registry, work_queue, training_sets, rng=rng)
        registry_path = str(tmp_path / "registry.json")

        finished = train_chains(registry, work_queue, expected, max_iterations=5,
                                registry_path=registry_path, checkpoint_every=3)

        assert finished == expected
        assert work_queue.empty()
        for job_id in registry:
            chain = registry.chain(job_id)
            assert 1 <= len(chain) <= 5
            assert chain[0].iteration == 2
            assert all(np.isfinite(r.log_norm) for r in chain)

        saved = JobRegistry.load(registry_path)
        assert {job_id: len(saved.chain(job_id)) for job_id in saved} == \
               {job_id: len(registry.chain(job_id)) for job_id in registry}

    def test_resumed_chain_continues_numbering(self, training_sets, rng):
        registry = JobRegistry()
        work_queue = WorkQueue()
        expected = hmm_survey_setup([0], [2], 1, registry, work_queue, training_sets, rng=rng)
        train_chains(registry, work_queue, expected, delta_thresh=0.0, max_iterations=3)

        job_id = JobID('exon', 2, 0, 1)
        assert registry.last(job_id).iteration == 4

        expected = hmm_survey_setup([0], [2], 1, registry, work_queue, training_sets, rng=rng)
        assert expected == 1
        train_chains(registry, work_queue, expected, delta_thresh=0.0, max_iterations=2)
        assert [r.iteration for r in registry.chain(job_id)] == [2, 3, 4, 5, 6]

    def test_converged_chains_not_retrained(self, training_sets, rng):
        registry = JobRegistry()
        work_queue = WorkQueue()
        expected = hmm_survey_setup([0], [1], 1, registry, work_queue, training_sets, rng=rng)
        train_chains(registry, work_queue, expected, delta_thresh=10.0)

        job_id = JobID('exon', 1, 0, 1)
        assert registry.last(job_id).converged is True

        expected = hmm_survey_setup([0], [1], 1, registry, work_queue, training_sets, rng=rng)
        assert expected == 0
        assert train_chains(registry, work_queue, expected) == 0
        assert len(registry.chain(job_id)) == 1

    def test_multiprocess_requires_shared_queue(self, simple_model, simple_coded):
        work_queue = WorkQueue()
        work_queue.put(WorkItem(JobID('exon', 2, 0, 1), 1, simple_model, 0.0, simple_coded))
        with pytest.raises(ValueError, match='shared'):
            train_chains(JobRegistry(), work_queue, 1, n_workers=2)

    def test_multiprocess_training(self, training_sets, rng):
        registry = JobRegistry()
        work_queue = WorkQueue(shared=True)
        try:
            expected = hmm_survey_setup([0], [1, 2], 2, registry, work_queue, training_sets,
                                        rng=rng)
            finished = train_chains(registry, work_queue, expected, n_workers=2,
                                    max_iterations=3, poll_interval=0.1)
        finally:
            work_queue.close()

        assert finished == expected == 4
        for job_id in registry:
            assert registry.has_chain(job_id)
