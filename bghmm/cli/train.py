#!/usr/bin/env python3
"""
BGHMM train CLI entry point.

Trains background HMM ensembles per genome partition from a table of
sampled sequences, resuming any chains already recorded in the registry.

Phases:
- survey (default): every order x state count x replicate per partition
- global: more replicates of the best survey configuration per partition
"""

import argparse
import os
import sys

import numpy as np
import pandas as pd

from bghmm.core.model_io import save_model_map
from bghmm.training.registry import JobRegistry
from bghmm.training.scheduler import (
    hmm_global_search_params,
    hmm_global_search_setup,
    hmm_survey_setup,
)
from bghmm.training.selection import (
    SAMPLE_COLUMNS,
    best_survey_params,
    finalize_models,
    split_obs_sets,
)
from bghmm.training.work_queue import WorkQueue
from bghmm.training.worker import train_chains
from bghmm.cli.common import (
    add_order_args, add_state_args, add_replicate_args, add_convergence_args,
    add_parallel_args, add_seed_args, add_output_args, add_verbose_args,
    add_version_args, resolve_cores,
)

MODEL_MAP_NAME = 'bghmm_models.json'


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Train background HMMs per genome partition',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Input:
  Tab-separated samples table with columns partition, start, end, sequence
  (1-based inclusive coordinates). Each partition is split into training and
  test halves by cumulative sample length.

Examples:
  # Survey orders 0-2 and 1-6 states, 3 replicates each, on 8 cores
  bghmm-train -i samples.tsv --registry survey.json -c 8

  # Global search: 10 replicates of the best survey configuration
  bghmm-train -i samples.tsv --phase global --from-survey survey.json \\
      --registry global.json -r 10 -o models/
'''
    )

    add_version_args(parser)

    parser.add_argument('-i', '--samples', required=True,
                        help='Samples table (.tsv)')
    parser.add_argument('--registry', required=True,
                        help='Registry file to resume and checkpoint (.json)')
    parser.add_argument('--phase', choices=['survey', 'global'], default='survey',
                        help='Training phase (default: survey)')
    parser.add_argument('--from-survey', default=None,
                        help='Survey registry to take the best configuration from '
                             '(global phase, when --registry is new)')
    parser.add_argument('--checkpoint-every', type=int, default=100,
                        help='Save the registry every N iterates (default: 100)')

    add_order_args(parser)
    add_state_args(parser)
    add_replicate_args(parser)
    add_convergence_args(parser)
    add_parallel_args(parser)
    add_seed_args(parser)
    add_output_args(parser, required=False,
                    help_text=f'Directory to write the finalized model map ({MODEL_MAP_NAME})')
    add_verbose_args(parser)

    return parser.parse_args(argv)


def load_samples(filepath: str) -> pd.DataFrame:
    """Load a samples table, checking its columns."""
    samples = pd.read_csv(filepath, sep='\t', dtype={'partition': str, 'sequence': str})
    missing = [c for c in SAMPLE_COLUMNS if c not in samples.columns]
    if missing:
        raise ValueError(f"{filepath} is missing column(s): {', '.join(missing)}")
    return samples


def main(argv=None):
    args = parse_args(argv)

    n_cores = resolve_cores(args.cores)
    rng = np.random.default_rng(args.seed)

    print("BGHMM Training")
    print(f"  Phase: {args.phase}")
    print(f"  Samples: {args.samples}")
    print(f"  Registry: {args.registry}")
    print(f"  Cores: {n_cores}")

    try:
        samples = load_samples(args.samples)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    training_sets, test_sets = split_obs_sets(samples)
    for partition in sorted(training_sets):
        print(f"  {partition}: {len(training_sets[partition])} training, "
              f"{len(test_sets[partition])} test sequences")

    registry = JobRegistry.load(args.registry)
    if len(registry):
        print(f"Resuming {len(registry)} chains from {args.registry}")

    work_queue = WorkQueue(shared=n_cores > 1)
    try:
        if args.phase == 'survey':
            print(f"\nSurvey: orders {args.orders}, states {args.states}, "
                  f"{args.replicates} replicates")
            expected = hmm_survey_setup(args.orders, args.states, args.replicates,
                                        registry, work_queue, training_sets,
                                        rng=rng, verbose=args.verbose)
            delta_thresh = args.delta_thresh
        else:
            try:
                if args.from_survey and len(registry) == 0:
                    survey = JobRegistry.load(args.from_survey)
                    params = best_survey_params(survey, test_sets, verbose=args.verbose)
                    registry = survey.restrict(params)
                else:
                    params = hmm_global_search_params(registry)
            except ValueError as e:
                print(f"Error: {e}")
                sys.exit(1)

            for partition, (K, order) in sorted(params.items()):
                print(f"  {partition}: K={K}, order={order}")
            expected = hmm_global_search_setup(registry, params, args.replicates,
                                               args.search_thresh, work_queue,
                                               training_sets, rng=rng,
                                               verbose=args.verbose)
            # Global search trains to the stricter bar it reopened chains against
            delta_thresh = args.search_thresh

        registry.save(args.registry)
        print(f"\nTraining {expected} chains...")
        finished = train_chains(registry, work_queue, expected, n_workers=n_cores,
                                delta_thresh=delta_thresh,
                                max_iterations=args.max_iterations,
                                registry_path=args.registry,
                                checkpoint_every=args.checkpoint_every,
                                verbose=args.verbose)
        print(f"Finished {finished} chains; registry saved to {args.registry}")
    finally:
        work_queue.close()

    if args.output:
        try:
            model_map = finalize_models(registry, test_sets, verbose=args.verbose)
        except ValueError as e:
            print(f"Error: cannot finalize models: {e}")
            sys.exit(1)

        os.makedirs(args.output, exist_ok=True)
        out_path = save_model_map(model_map, os.path.join(args.output, MODEL_MAP_NAME))
        print(f"\nFinalized models written to {out_path}")
        for partition, (model, order, score) in sorted(model_map.items()):
            print(f"  {partition}: K={model.n_states}, order={order}, test log-likelihood={score:.2f}")


if __name__ == '__main__':
    main()
