"""
BGHMM model I/O module

Handles loading and saving single models and finalized model maps
(partition -> (model, order, score)) as JSON.

If a path does not end in .json, the extension is replaced and a warning
is issued.
"""

import json
import os
import warnings
from typing import Dict, Optional, Tuple

from bghmm.core.hmm import BackgroundHMM

FinalizedModelMap = Dict[str, Tuple[BackgroundHMM, int, float]]

FORMAT_VERSION = '1.0'


def _json_path(filepath: str) -> str:
    if filepath.endswith('.json'):
        return filepath
    base, _ = os.path.splitext(filepath)
    new_path = base + '.json'
    warnings.warn(
        f"Only JSON format is supported for saving. "
        f"Saving to '{new_path}' instead of '{filepath}'."
    )
    return new_path


def save_model(model: BackgroundHMM, filepath: str, partition: Optional[str] = None) -> str:
    """
    Save model to file in JSON format.

    Returns:
        The path actually written
    """
    filepath = _json_path(filepath)
    data = model.to_dict()
    data['version'] = FORMAT_VERSION
    data['order'] = model.order
    data['partition'] = partition
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)
    return filepath


def load_model(filepath: str) -> BackgroundHMM:
    """Load a single model saved by save_model."""
    with open(filepath, 'r') as f:
        data = json.load(f)
    return BackgroundHMM.from_dict(data)


def save_model_map(model_map: FinalizedModelMap, filepath: str) -> str:
    """
    Save a finalized model map.

    Args:
        model_map: partition -> (model, order, score)
        filepath: Output path (.json)

    Returns:
        The path actually written
    """
    filepath = _json_path(filepath)
    data = {
        'model_type': 'BGHMM_model_map',
        'version': FORMAT_VERSION,
        'partitions': {
            partition: {
                'model': model.to_dict(),
                'order': int(order),
                'score': float(score),
            }
            for partition, (model, order, score) in model_map.items()
        },
    }
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)
    return filepath


def load_model_map(filepath: str) -> FinalizedModelMap:
    """Load a finalized model map saved by save_model_map."""
    with open(filepath, 'r') as f:
        data = json.load(f)

    if data.get('model_type') != 'BGHMM_model_map':
        raise ValueError(f"{filepath} is not a BGHMM model map")

    model_map = {}
    for partition, entry in data['partitions'].items():
        model = BackgroundHMM.from_dict(entry['model'])
        order = int(entry['order'])
        if model.order != order:
            raise ValueError(
                f"Partition '{partition}': stored order {order} does not match "
                f"emission alphabet of {model.n_symbols} symbols"
            )
        model_map[partition] = (model, order, float(entry['score']))
    return model_map
