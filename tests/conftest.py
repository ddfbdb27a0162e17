"""
Shared pytest fixtures for BGHMM tests.
"""
import pytest
import numpy as np
import pandas as pd
import tempfile

from bghmm.core.hmm import BackgroundHMM
from bghmm.training.registry import JobID, IterationRecord, JobRegistry


@pytest.fixture
def simple_emission_probs():
    """
    2-state, order-0 emission matrix (symbols A, C, G, T).
    State 0: AT-rich
    State 1: GC-rich
    """
    return np.array([
        [0.4, 0.1, 0.1, 0.4],
        [0.1, 0.4, 0.4, 0.1],
    ])


@pytest.fixture
def simple_model(simple_emission_probs):
    """BackgroundHMM with K=2, order 0."""
    return BackgroundHMM(
        startprob=np.array([0.5, 0.5]),
        transmat=np.array([[0.9, 0.1], [0.1, 0.9]]),
        emissionprob=simple_emission_probs,
    )


@pytest.fixture
def order1_model():
    """BackgroundHMM with K=3, order 1 (16 symbols)."""
    rng = np.random.default_rng(7)
    return BackgroundHMM(
        startprob=np.array([0.2, 0.3, 0.5]),
        transmat=np.array([[0.8, 0.1, 0.1], [0.05, 0.9, 0.05], [0.2, 0.2, 0.6]]),
        emissionprob=rng.dirichlet(np.ones(16), size=3),
    )


@pytest.fixture
def simple_sequences():
    """Training sequences with an AT-rich and a GC-rich stretch."""
    return [
        'ATTATAAATTTAGCGCGGCCGCGCATATTA',
        'GGCGCCGCGATATATTAAT',
        'TATAAGCGC',
    ]


@pytest.fixture
def simple_coded(simple_sequences):
    """Order-0 coded versions of simple_sequences."""
    from bghmm.core.order_coding import code_seqs
    return code_seqs(simple_sequences, 0)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def samples_df():
    """Sample table with two partitions."""
    return pd.DataFrame({
        'partition': ['exon', 'exon', 'exon', 'exon', 'intergenic', 'intergenic', 'intergenic'],
        'start': [1, 101, 201, 301, 1, 51, 101],
        'end': [10, 110, 210, 310, 20, 70, 120],
        'sequence': ['ACGTACGTAC', 'GGCCGGCCGG', 'ATATATATAT', 'CGCGCGCGCG',
                     'AAAATTTTAAAATTTTAAAA', 'ACACACACACACACACACAC', 'TTTTGGGGTTTTGGGGTTTT'],
    })


def make_record(model, iteration=5, converged=False, score=0.5, log_norm=-100.0):
    return IterationRecord(iteration=iteration, model=model, log_norm=log_norm,
                           score=score, converged=converged)


@pytest.fixture
def make_iteration_record():
    """Factory for IterationRecords."""
    return make_record


@pytest.fixture
def populated_registry(simple_model):
    """Registry with one unconverged and one converged exon chain."""
    registry = JobRegistry()
    open_job = JobID('exon', 2, 0, 1)
    done_job = JobID('exon', 2, 0, 2)
    registry.append(open_job, make_record(simple_model, iteration=2))
    registry.append(open_job, make_record(simple_model, iteration=3))
    registry.append(done_job, make_record(simple_model, iteration=2))
    registry.append(done_job, make_record(simple_model, iteration=3, converged=True, score=1e-4))
    return registry


@pytest.fixture
def temp_dir():
    """Temporary directory for file operations."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir
