"""
Genetic Operators
=================

Hyperparameter genomes for evolving Q-learning paddles.

Evolution works on hyperparameters only. Network weights are learned
within an individual's lifetime and are never crossed over.

Genes and valid ranges:
    learning_rate       0.001 - 0.05
    epsilon_decay       0.95  - 0.995
    hidden_layer_size   8     - 24    (integer)
    discount_factor     0.90  - 0.99
    batch_size          16    - 64    (integer)
"""

import struct
from dataclasses import dataclass, fields, replace, asdict
from typing import Dict, Any

import numpy as np

# Multiplicative perturbation for float genes
MUTATION_FACTOR_RANGE = (0.8, 1.2)
# Additive perturbation for integer genes
HIDDEN_SIZE_STEP = 4
BATCH_SIZE_STEP = 8

# lr, epsilon decay, hidden size, discount, batch size
_GENES_STRUCT = struct.Struct('<ffifi')


def _f32(value: float) -> float:
    """Round to the nearest float32 so genes survive a save/load unchanged."""
    return float(np.float32(value))


# Float bounds are stored at float32 precision like the genes themselves
LEARNING_RATE_RANGE = (_f32(0.001), _f32(0.05))
EPSILON_DECAY_RANGE = (_f32(0.95), _f32(0.995))
HIDDEN_SIZE_RANGE = (8, 24)
DISCOUNT_FACTOR_RANGE = (_f32(0.90), _f32(0.99))
BATCH_SIZE_RANGE = (16, 64)


def _clamp(value, bounds):
    low, high = bounds
    return max(low, min(high, value))


@dataclass(frozen=True)
class GeneticParams:
    """
    One individual's hyperparameter genome.

    Float genes are stored at float32 precision to match the binary format.
    """
    learning_rate: float = 0.01
    epsilon_decay: float = 0.98
    hidden_layer_size: int = 12
    discount_factor: float = 0.95
    batch_size: int = 32

    def __post_init__(self):
        object.__setattr__(self, 'learning_rate', _f32(self.learning_rate))
        object.__setattr__(self, 'epsilon_decay', _f32(self.epsilon_decay))
        object.__setattr__(self, 'discount_factor', _f32(self.discount_factor))
        object.__setattr__(self, 'hidden_layer_size', int(self.hidden_layer_size))
        object.__setattr__(self, 'batch_size', int(self.batch_size))

    def clamped(self) -> 'GeneticParams':
        """Return a copy with every gene inside its valid range."""
        return GeneticParams(
            learning_rate=_clamp(self.learning_rate, LEARNING_RATE_RANGE),
            epsilon_decay=_clamp(self.epsilon_decay, EPSILON_DECAY_RANGE),
            hidden_layer_size=_clamp(self.hidden_layer_size, HIDDEN_SIZE_RANGE),
            discount_factor=_clamp(self.discount_factor, DISCOUNT_FACTOR_RANGE),
            batch_size=_clamp(self.batch_size, BATCH_SIZE_RANGE),
        )

    def is_valid(self) -> bool:
        return self == self.clamped()

    @classmethod
    def random(cls, rng: np.random.Generator) -> 'GeneticParams':
        """Draw every gene uniformly from its range."""
        return cls(
            learning_rate=rng.uniform(*LEARNING_RATE_RANGE),
            epsilon_decay=rng.uniform(*EPSILON_DECAY_RANGE),
            hidden_layer_size=int(rng.integers(HIDDEN_SIZE_RANGE[0], HIDDEN_SIZE_RANGE[1] + 1)),
            discount_factor=rng.uniform(*DISCOUNT_FACTOR_RANGE),
            batch_size=int(rng.integers(BATCH_SIZE_RANGE[0], BATCH_SIZE_RANGE[1] + 1)),
        ).clamped()

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        """Fixed 20-byte little-endian encoding."""
        return _GENES_STRUCT.pack(
            self.learning_rate,
            self.epsilon_decay,
            self.hidden_layer_size,
            self.discount_factor,
            self.batch_size,
        )

    @classmethod
    def from_bytes(cls, data: bytes, offset: int = 0) -> 'GeneticParams':
        lr, ed, hls, df, bs = _GENES_STRUCT.unpack_from(data, offset)
        return cls(lr, ed, hls, df, bs)

    @staticmethod
    def encoded_size() -> int:
        return _GENES_STRUCT.size

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeneticParams':
        defaults = cls()
        return cls(**{f.name: data.get(f.name, getattr(defaults, f.name)) for f in fields(cls)})


def crossover(parent_a: GeneticParams, parent_b: GeneticParams, rng: np.random.Generator) -> GeneticParams:
    """Pick each gene wholly from one parent with a fair coin flip."""
    genes = {}
    for f in fields(GeneticParams):
        source = parent_a if rng.random() < 0.5 else parent_b
        genes[f.name] = getattr(source, f.name)
    return GeneticParams(**genes)


def mutate(genes: GeneticParams, rate: float, rng: np.random.Generator) -> GeneticParams:
    """
    Perturb each gene independently with probability rate.

    Float genes are scaled by a factor in [0.8, 1.2]; integer genes get an
    additive offset. The result is clamped to the valid ranges.
    """
    changes: Dict[str, Any] = {}

    if rng.random() < rate:
        changes['learning_rate'] = genes.learning_rate * rng.uniform(*MUTATION_FACTOR_RANGE)
    if rng.random() < rate:
        changes['epsilon_decay'] = genes.epsilon_decay * rng.uniform(*MUTATION_FACTOR_RANGE)
    if rng.random() < rate:
        changes['hidden_layer_size'] = genes.hidden_layer_size + int(
            rng.integers(-HIDDEN_SIZE_STEP, HIDDEN_SIZE_STEP + 1))
    if rng.random() < rate:
        changes['discount_factor'] = genes.discount_factor * rng.uniform(*MUTATION_FACTOR_RANGE)
    if rng.random() < rate:
        changes['batch_size'] = genes.batch_size + int(
            rng.integers(-BATCH_SIZE_STEP, BATCH_SIZE_STEP + 1))

    return replace(genes, **changes).clamped()
