#!/usr/bin/env python3
"""
BGHMM apply CLI entry point.
Scores every base of a set of sequences under the background HMM of the
partition annotated at that base.
"""

import argparse
import os
import sys

import numpy as np
import pandas as pd
import pysam

from bghmm.core.model_io import load_model_map
from bghmm.inference.assembler import (
    bghmm_likelihood_calc, mask_from_intervals, mask_uncodable_bases,
)
from bghmm.cli.common import (
    add_parallel_args, add_output_args, add_verbose_args, add_version_args,
    resolve_cores,
)

INTERVAL_COLUMNS = ['name', 'start', 'end', 'partition', 'strand']


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Score sequences base by base with partition-specific background HMMs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Inputs:
  FASTA of observation sequences, and a tab-separated annotation table with
  columns name, start, end, partition, strand (0-based, end-exclusive,
  strand one of + - .). Bases with no annotation use --default-partition.
  Bases other than A, C, G, T (e.g. N runs) are not scored and stay 0.

Output:
  <output>.npy   (positions x observations) log-likelihood matrix
  <output>.tsv   observation name for each matrix column

Examples:
  bghmm-apply -i obs.fa -a partitions.tsv -m models/bghmm_models.json -o obs_lh
'''
    )

    add_version_args(parser)

    parser.add_argument('-i', '--input', required=True,
                        help='Observation sequences (.fa/.fasta, optionally gzipped)')
    parser.add_argument('-a', '--annotation', required=True,
                        help='Partition annotation table (.tsv)')
    parser.add_argument('-m', '--models', required=True,
                        help='Finalized model map from bghmm-train (.json)')
    parser.add_argument('--offsets', default=None,
                        help='Optional table of name, offset (matrix row of each sequence start)')
    parser.add_argument('--default-partition', default='intergenic',
                        help='Partition for unannotated bases (default: intergenic)')

    add_output_args(parser, help_text='Output prefix')
    add_parallel_args(parser)
    add_verbose_args(parser)

    return parser.parse_args(argv)


def read_observations(fasta_path: str, annotation: pd.DataFrame,
                      offsets: dict, default_partition: str = 'intergenic') -> pd.DataFrame:
    """Assemble the observation table (name, sequence, mask, offset)."""
    rows = []
    with pysam.FastxFile(fasta_path) as fh:
        for entry in fh:
            seq = entry.sequence.upper()
            intervals = annotation[annotation['name'] == entry.name]
            mask = mask_from_intervals(len(seq), intervals, default_partition=default_partition)
            mask = mask_uncodable_bases(seq, mask)
            rows.append({'name': entry.name, 'sequence': seq, 'mask': mask,
                         'offset': int(offsets.get(entry.name, 0))})
    return pd.DataFrame(rows, columns=['name', 'sequence', 'mask', 'offset'])


def main(argv=None):
    args = parse_args(argv)
    n_cores = resolve_cores(args.cores)

    print("BGHMM Apply")
    print(f"  Input: {args.input}")
    print(f"  Annotation: {args.annotation}")
    print(f"  Models: {args.models}")
    print(f"  Cores: {n_cores}")

    try:
        model_map = load_model_map(args.models)
        annotation = pd.read_csv(args.annotation, sep='\t', dtype={'name': str})
        missing = [c for c in INTERVAL_COLUMNS if c not in annotation.columns]
        if missing:
            raise ValueError(f"{args.annotation} is missing column(s): {', '.join(missing)}")
        offsets = {}
        if args.offsets:
            offset_df = pd.read_csv(args.offsets, sep='\t', dtype={'name': str})
            offsets = dict(zip(offset_df['name'], offset_df['offset']))
        observations = read_observations(args.input, annotation, offsets,
                                         default_partition=args.default_partition)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    if len(observations) == 0:
        print(f"Error: no sequences in {args.input}")
        sys.exit(1)

    for partition, (model, order, score) in sorted(model_map.items()):
        print(f"  {partition}: K={model.n_states}, order={order}")
    print(f"\nScoring {len(observations)} sequences...")

    try:
        lh_matrix = bghmm_likelihood_calc(observations, model_map, n_workers=n_cores,
                                          verbose=args.verbose)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    out_dir = os.path.dirname(os.path.abspath(args.output))
    os.makedirs(out_dir, exist_ok=True)
    np.save(args.output + '.npy', lh_matrix)
    observations[['name', 'offset']].to_csv(args.output + '.tsv', sep='\t', index=False)

    print(f"Likelihood matrix {lh_matrix.shape} written to {args.output}.npy")


if __name__ == '__main__':
    main()
