"""Core HMM model, priors, order coding and model I/O."""

from bghmm.core.hmm import BackgroundHMM
from bghmm.core.order_coding import code_seqs, code_sequence, reverse_complement
from bghmm.core.priors import generate_transition_matrix, generate_emission_dist, init_random_hmm
from bghmm.core.model_io import load_model, save_model, load_model_map, save_model_map
