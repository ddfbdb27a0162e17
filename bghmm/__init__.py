"""
BGHMM - background hidden Markov models of genomic sequence composition,
trained per genome partition and used to score sequences base by base.
"""

__version__ = "0.1.0"

from bghmm.core.hmm import BackgroundHMM
from bghmm.core.model_io import load_model, save_model, load_model_map, save_model_map
from bghmm.training.registry import JobID, IterationRecord, JobRegistry
