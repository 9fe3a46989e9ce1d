"""
Tests for the hyperparameter genome and genetic operators.

These tests verify:
    - Genes stay inside their valid ranges under mutation
    - Crossover takes every gene from one of the parents
    - The fixed-size binary encoding
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.ai.genetics import (
    GeneticParams, crossover, mutate,
    LEARNING_RATE_RANGE, EPSILON_DECAY_RANGE, HIDDEN_SIZE_RANGE,
    DISCOUNT_FACTOR_RANGE, BATCH_SIZE_RANGE,
)


def assert_in_range(genes: GeneticParams):
    assert LEARNING_RATE_RANGE[0] <= genes.learning_rate <= LEARNING_RATE_RANGE[1]
    assert EPSILON_DECAY_RANGE[0] <= genes.epsilon_decay <= EPSILON_DECAY_RANGE[1]
    assert HIDDEN_SIZE_RANGE[0] <= genes.hidden_layer_size <= HIDDEN_SIZE_RANGE[1]
    assert DISCOUNT_FACTOR_RANGE[0] <= genes.discount_factor <= DISCOUNT_FACTOR_RANGE[1]
    assert BATCH_SIZE_RANGE[0] <= genes.batch_size <= BATCH_SIZE_RANGE[1]


@pytest.fixture
def rng():
    return np.random.default_rng(0)


class TestGeneticParams:
    """Test the genome value type."""

    def test_defaults(self):
        genes = GeneticParams()
        assert genes.learning_rate == pytest.approx(0.01)
        assert genes.epsilon_decay == pytest.approx(0.98)
        assert genes.hidden_layer_size == 12
        assert genes.discount_factor == pytest.approx(0.95)
        assert genes.batch_size == 32
        assert genes.is_valid()

    def test_clamped(self):
        genes = GeneticParams(learning_rate=1.0, epsilon_decay=0.5, hidden_layer_size=100,
                              discount_factor=2.0, batch_size=1).clamped()
        assert genes.learning_rate == LEARNING_RATE_RANGE[1]
        assert genes.epsilon_decay == EPSILON_DECAY_RANGE[0]
        assert genes.hidden_layer_size == HIDDEN_SIZE_RANGE[1]
        assert genes.discount_factor == DISCOUNT_FACTOR_RANGE[1]
        assert genes.batch_size == BATCH_SIZE_RANGE[0]

    def test_invalid_detected(self):
        assert not GeneticParams(hidden_layer_size=4).is_valid()

    def test_random_in_range(self, rng):
        for _ in range(500):
            assert_in_range(GeneticParams.random(rng))

    def test_frozen(self):
        genes = GeneticParams()
        with pytest.raises(AttributeError):
            genes.batch_size = 8

    def test_bytes_round_trip(self, rng):
        genes = GeneticParams.random(rng)
        data = genes.to_bytes()
        assert len(data) == GeneticParams.encoded_size() == 20
        assert GeneticParams.from_bytes(data) == genes

    def test_from_bytes_offset(self):
        genes = GeneticParams(hidden_layer_size=16)
        data = b'\x00' * 4 + genes.to_bytes()
        assert GeneticParams.from_bytes(data, offset=4) == genes

    def test_dict_round_trip(self):
        genes = GeneticParams(batch_size=48)
        assert GeneticParams.from_dict(genes.to_dict()) == genes

    def test_from_dict_defaults(self):
        assert GeneticParams.from_dict({'batch_size': 40}).hidden_layer_size == 12


class TestCrossover:
    """Test uniform crossover."""

    def test_genes_from_parents(self, rng):
        a = GeneticParams(0.001, 0.95, 8, 0.90, 16)
        b = GeneticParams(0.05, 0.995, 24, 0.99, 64)
        for _ in range(100):
            child = crossover(a, b, rng)
            for name in ('learning_rate', 'epsilon_decay', 'hidden_layer_size', 'discount_factor', 'batch_size'):
                assert getattr(child, name) in (getattr(a, name), getattr(b, name))

    def test_mixes_parents(self, rng):
        a = GeneticParams(0.001, 0.95, 8, 0.90, 16)
        b = GeneticParams(0.05, 0.995, 24, 0.99, 64)
        children = {crossover(a, b, rng) for _ in range(100)}
        assert len(children) > 2

    def test_identical_parents(self, rng):
        genes = GeneticParams()
        assert crossover(genes, genes, rng) == genes


class TestMutation:
    """Test mutation."""

    def test_never_leaves_range(self, rng):
        """1000+ randomized mutations stay valid, including from the edges."""
        edges = [
            GeneticParams(*[r[0] for r in (LEARNING_RATE_RANGE, EPSILON_DECAY_RANGE, HIDDEN_SIZE_RANGE,
                                           DISCOUNT_FACTOR_RANGE, BATCH_SIZE_RANGE)]),
            GeneticParams(*[r[1] for r in (LEARNING_RATE_RANGE, EPSILON_DECAY_RANGE, HIDDEN_SIZE_RANGE,
                                           DISCOUNT_FACTOR_RANGE, BATCH_SIZE_RANGE)]),
        ]
        for i in range(1500):
            base = edges[i % 2] if i % 3 == 0 else GeneticParams.random(rng)
            assert_in_range(mutate(base, 1.0, rng))

    def test_repeated_mutation_stays_valid(self, rng):
        genes = GeneticParams()
        for _ in range(1000):
            genes = mutate(genes, 0.5, rng)
            assert_in_range(genes)

    def test_zero_rate_is_identity(self, rng):
        genes = GeneticParams.random(rng)
        for _ in range(50):
            assert mutate(genes, 0.0, rng) == genes

    def test_full_rate_changes_genes(self, rng):
        genes = GeneticParams()
        mutated = [mutate(genes, 1.0, rng) for _ in range(20)]
        assert any(m.learning_rate != genes.learning_rate for m in mutated)
        assert any(m.hidden_layer_size != genes.hidden_layer_size for m in mutated)
