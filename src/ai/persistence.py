"""
Model and Metrics Persistence
=============================

Binary and text codecs for everything the trainer and tournament write to
disk.

Model file (little-endian, no version field):
    int32   num_layers              (weight matrices, i.e. layers - 1)
    int32   first_input_size
    int32   output_size[num_layers]
    float32 weights                 (layer, neuron, input order)
    float32 biases                  (layer, neuron order)

Metrics file (text):
    Fitness: 0.5
    Epsilon: 0.1
    Wins: 12
    TotalGames: 20
    Episodes: 20

Older metrics files carry ``WinRate:`` instead of ``Fitness:``; it is read as
fitness.
"""

import os
import struct
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Optional, Tuple, Any

import numpy as np

from .network import NeuralNetwork
from src.utils.logger import get_logger, log_model_event

logger = get_logger(__name__)

_INT = struct.Struct('<i')
_F32 = np.dtype('<f4')

# Reject absurd headers before allocating anything
MAX_LAYERS = 64
MAX_LAYER_SIZE = 1 << 16


@dataclass
class TrainingMetrics:
    """Performance summary stored next to a model file."""
    fitness: float = 0.0
    epsilon: float = 1.0
    wins: int = 0
    total_games: int = 0
    episodes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


# =============================================================================
# Model binary
# =============================================================================

def encode_model(network: NeuralNetwork) -> bytes:
    """Serialize a network's layer sizes, weights and biases."""
    weights = network.get_weights()
    biases = network.get_biases()

    parts = [_INT.pack(len(weights)), _INT.pack(weights[0].shape[1])]
    parts.extend(_INT.pack(w.shape[0]) for w in weights)
    parts.extend(np.ascontiguousarray(w, dtype=_F32).tobytes() for w in weights)
    parts.extend(np.ascontiguousarray(b, dtype=_F32).tobytes() for b in biases)
    return b''.join(parts)


def decode_model(data: bytes, rng: Optional[np.random.Generator] = None) -> NeuralNetwork:
    """
    Rebuild a network from encode_model() output.

    Raises:
        ValueError: If the header is invalid or the payload length is wrong
    """
    if len(data) < 2 * _INT.size:
        raise ValueError("File too short for model header")

    num_layers = _INT.unpack_from(data, 0)[0]
    if not 2 <= num_layers <= MAX_LAYERS:
        raise ValueError(f"Invalid layer count: {num_layers}")

    header_ints = 2 + num_layers
    if len(data) < header_ints * _INT.size:
        raise ValueError("File too short for layer sizes")
    sizes = [_INT.unpack_from(data, i * _INT.size)[0] for i in range(1, header_ints)]
    if any(not 0 < s <= MAX_LAYER_SIZE for s in sizes):
        raise ValueError(f"Invalid layer sizes: {sizes}")

    weight_count = sum(sizes[i] * sizes[i + 1] for i in range(num_layers))
    bias_count = sum(sizes[1:])
    expected = header_ints * _INT.size + (weight_count + bias_count) * _F32.itemsize
    if len(data) != expected:
        raise ValueError(f"Expected {expected} bytes, found {len(data)}")

    values = np.frombuffer(data, dtype=_F32, offset=header_ints * _INT.size)
    weights, biases = [], []
    offset = 0
    for i in range(num_layers):
        n = sizes[i] * sizes[i + 1]
        weights.append(values[offset:offset + n].reshape(sizes[i + 1], sizes[i]))
        offset += n
    for i in range(num_layers):
        n = sizes[i + 1]
        biases.append(values[offset:offset + n])
        offset += n

    return NeuralNetwork.from_parameters(weights, biases, rng=rng)


def save_model(network: NeuralNetwork, filepath: str) -> bool:
    """
    Write a network to a binary model file.

    Returns:
        True on success, False if the file could not be written
    """
    try:
        _ensure_parent(filepath)
        with open(filepath, 'wb') as f:
            f.write(encode_model(network))
    except OSError as e:
        logger.error(f"Failed to save model to {filepath}: {e}")
        return False
    log_model_event('save', filepath, layers=network.layer_sizes)
    return True


def load_model(filepath: str, rng: Optional[np.random.Generator] = None) -> Optional[NeuralNetwork]:
    """
    Read a network from a binary model file.

    Returns:
        The network, or None if the file is missing, truncated or invalid
    """
    try:
        with open(filepath, 'rb') as f:
            data = f.read()
        network = decode_model(data, rng=rng)
    except OSError as e:
        logger.warning(f"Cannot read model {filepath}: {e}")
        return None
    except ValueError as e:
        logger.warning(f"Invalid model file {filepath}: {e}")
        return None
    log_model_event('load', filepath, layers=network.layer_sizes)
    return network


def inspect_model(filepath: str) -> Optional[Dict[str, Any]]:
    """
    Read a model file's header without keeping the network.

    Returns:
        Dictionary with model info, or None on error
    """
    network = load_model(filepath)
    if network is None:
        return None
    return {
        'filepath': filepath,
        'filename': os.path.basename(filepath),
        'file_size_bytes': os.path.getsize(filepath),
        'layer_sizes': network.layer_sizes,
        'parameters': network.count_parameters(),
    }


def save_model_text(network: NeuralNetwork, filepath: str) -> bool:
    """Write a human-readable dump of a network (for debugging)."""
    lines = [f"Layers: {' '.join(str(s) for s in network.layer_sizes)}"]
    for i, (w, b) in enumerate(zip(network.get_weights(), network.get_biases())):
        lines.append(f"Layer {i}:")
        for neuron, row in enumerate(w):
            values = ' '.join(f"{v:.6f}" for v in row)
            lines.append(f"  Neuron {neuron}: {values} | bias {b[neuron]:.6f}")
    try:
        _ensure_parent(filepath)
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write('\n'.join(lines) + '\n')
    except OSError as e:
        logger.error(f"Failed to write model dump {filepath}: {e}")
        return False
    return True


# =============================================================================
# Key: value text files
# =============================================================================

def write_key_values(
    filepath: str,
    pairs: Iterable[Tuple[str, Any]],
    title: Optional[str] = None,
) -> bool:
    """Write ``Key: value`` lines, optionally under a title line."""
    lines = [title] if title else []
    lines.extend(f"{key}: {value}" for key, value in pairs)
    try:
        _ensure_parent(filepath)
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write('\n'.join(lines) + '\n')
    except OSError as e:
        logger.error(f"Failed to write {filepath}: {e}")
        return False
    return True


def read_key_values(filepath: str) -> Optional[Dict[str, str]]:
    """
    Parse ``Key: value`` lines; lines without a colon are skipped.

    Returns:
        Mapping of key to raw string value, or None if the file is unreadable
    """
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            text = f.read()
    except OSError as e:
        logger.debug(f"Cannot read {filepath}: {e}")
        return None

    values: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(':')
        if sep:
            values[key.strip()] = value.strip()
    return values


# =============================================================================
# Metrics
# =============================================================================

def save_metrics(metrics: TrainingMetrics, filepath: str) -> bool:
    """Write a metrics file next to a model."""
    return write_key_values(filepath, [
        ('Fitness', metrics.fitness),
        ('Epsilon', metrics.epsilon),
        ('Wins', metrics.wins),
        ('TotalGames', metrics.total_games),
        ('Episodes', metrics.episodes),
    ])


def load_metrics(filepath: str) -> Optional[TrainingMetrics]:
    """
    Read a metrics file.

    Missing keys keep their defaults (fitness 0, epsilon 1.0, counters 0).

    Returns:
        Parsed metrics, or None if the file is missing or malformed
    """
    values = read_key_values(filepath)
    if values is None:
        return None

    metrics = TrainingMetrics()
    try:
        if 'Fitness' in values:
            metrics.fitness = float(values['Fitness'])
        elif 'WinRate' in values:
            metrics.fitness = float(values['WinRate'])
        if 'Epsilon' in values:
            metrics.epsilon = float(values['Epsilon'])
        if 'Wins' in values:
            metrics.wins = int(values['Wins'])
        if 'TotalGames' in values:
            metrics.total_games = int(values['TotalGames'])
        if 'Episodes' in values:
            metrics.episodes = int(values['Episodes'])
    except ValueError as e:
        logger.warning(f"Malformed metrics file {filepath}: {e}")
        return None
    return metrics
