"""Shared argparse argument factories for BGHMM CLI tools.

Each function adds a group of related arguments to an ArgumentParser.
Default values can be overridden per-script where needed.
"""

import argparse


def add_order_args(parser: argparse.ArgumentParser, default=None) -> None:
    """Add --orders (markov orders to survey)."""
    if default is None:
        default = [0, 1, 2]
    parser.add_argument(
        '--orders', '-n', type=int, nargs='+', default=default,
        help=f"Markov orders to survey (default: {default})"
    )


def add_state_args(parser: argparse.ArgumentParser, default=None) -> None:
    """Add --states (HMM state counts to survey)."""
    if default is None:
        default = [1, 2, 3, 4, 5, 6]
    parser.add_argument(
        '--states', '-K', type=int, nargs='+', default=default,
        help=f"Numbers of HMM states to survey (default: {default})"
    )


def add_replicate_args(parser: argparse.ArgumentParser, default: int = 3) -> None:
    """Add --replicates."""
    parser.add_argument(
        '--replicates', '-r', type=int, default=default,
        help=f"Replicate chains per configuration (default: {default})"
    )


def add_convergence_args(parser: argparse.ArgumentParser,
                         delta_thresh: float = 1e-3,
                         search_thresh: float = 1e-5,
                         max_iterations: int = 1000) -> None:
    """Add convergence arguments (--delta-thresh, --search-thresh, --max-iterations)."""
    parser.add_argument(
        '--delta-thresh', type=float, default=delta_thresh,
        help=f"Parameter shift below which a chain has converged (default: {delta_thresh})"
    )
    parser.add_argument(
        '--search-thresh', type=float, default=search_thresh,
        help=f"Stricter convergence bar for global search (default: {search_thresh})"
    )
    parser.add_argument(
        '--max-iterations', type=int, default=max_iterations,
        help=f"EM updates per chain in one session (default: {max_iterations})"
    )


def add_parallel_args(parser: argparse.ArgumentParser,
                      default_cores: int = 1) -> None:
    """Add --cores."""
    parser.add_argument(
        '--cores', '-c', type=int, default=default_cores,
        help=f"Number of CPU cores (0=auto, default: {default_cores})"
    )


def add_seed_args(parser: argparse.ArgumentParser, default=None) -> None:
    """Add --seed."""
    parser.add_argument(
        '--seed', '-s', type=int, default=default,
        help="Random seed for new chains (default: unseeded)"
    )


def add_output_args(parser: argparse.ArgumentParser,
                    required: bool = True,
                    help_text: str = "Output directory") -> None:
    """Add -o/--output argument."""
    parser.add_argument(
        '-o', '--output', required=required,
        help=help_text
    )


def add_verbose_args(parser: argparse.ArgumentParser) -> None:
    """Add --verbose flag."""
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help="Verbose output"
    )


def add_version_args(parser: argparse.ArgumentParser) -> None:
    """Add --version flag."""
    from bghmm import __version__
    parser.add_argument(
        '--version', action='version',
        version=f'%(prog)s {__version__}'
    )


def resolve_cores(cores: int) -> int:
    """0 means one worker per CPU."""
    if cores == 0:
        import multiprocessing
        return multiprocessing.cpu_count()
    return cores
