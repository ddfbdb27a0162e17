"""Resumable training-job scheduling, EM workers and model selection."""

from bghmm.training.registry import JobID, IterationRecord, JobRegistry
from bghmm.training.work_queue import WorkItem, TrainingResult, WorkQueue
from bghmm.training.scheduler import (
    hmm_survey_setup,
    hmm_global_search_params,
    hmm_global_search_setup,
)
from bghmm.training.em import em_step, train_work_item
from bghmm.training.worker import em_worker, train_chains
from bghmm.training.selection import (
    split_obs_sets,
    score_chain_models,
    best_survey_params,
    finalize_models,
)

__all__ = [
    'JobID',
    'IterationRecord',
    'JobRegistry',
    'WorkItem',
    'TrainingResult',
    'WorkQueue',
    'hmm_survey_setup',
    'hmm_global_search_params',
    'hmm_global_search_setup',
    'em_step',
    'train_work_item',
    'em_worker',
    'train_chains',
    'split_obs_sets',
    'score_chain_models',
    'best_survey_params',
    'finalize_models',
]
