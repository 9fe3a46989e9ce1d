"""
Tests for the feed-forward Q-network.

These tests verify:
    - Network architecture and initialization
    - Forward pass (softmax and raw Q-values)
    - Size-mismatch degradation
    - Gradient steps toward a target
    - Cloning and parameter access
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from src.ai.network import NeuralNetwork


@pytest.fixture
def config():
    """Create test configuration."""
    return Config()


@pytest.fixture
def network(config):
    """Create network instance."""
    return NeuralNetwork(
        [config.STATE_SIZE, config.HIDDEN_SIZE, config.ACTION_SIZE],
        rng=np.random.default_rng(0),
    )


@pytest.fixture
def state():
    return np.array([0.5, 0.3, 0.8, 0.2, 0.4, 0.45], dtype=np.float32)


class TestNetworkInitialization:
    """Test network initialization."""

    def test_layer_sizes(self, network, config):
        assert network.layer_sizes == [config.STATE_SIZE, config.HIDDEN_SIZE, config.ACTION_SIZE]
        assert network.input_size == config.STATE_SIZE
        assert network.output_size == config.ACTION_SIZE
        assert network.hidden_size == config.HIDDEN_SIZE

    def test_weight_shapes(self, network):
        """Weights are (out x in), one bias per neuron."""
        assert network.weights[0].shape == (12, 6)
        assert network.weights[1].shape == (3, 12)
        assert network.biases[0].shape == (12,)
        assert network.biases[1].shape == (3,)

    def test_biases_start_at_zero(self, network):
        for b in network.biases:
            assert np.all(b == 0)

    def test_xavier_limits(self, network):
        """Initial weights lie inside the Xavier uniform bound."""
        for w in network.weights:
            fan_out, fan_in = w.shape
            limit = np.sqrt(6.0 / (fan_in + fan_out))
            assert np.all(np.abs(w) <= limit + 1e-6)

    def test_float32_storage(self, network):
        for w, b in zip(network.weights, network.biases):
            assert w.dtype == np.float32
            assert b.dtype == np.float32

    def test_too_few_layers(self):
        with pytest.raises(ValueError):
            NeuralNetwork([6, 3])

    def test_non_positive_layer(self):
        with pytest.raises(ValueError):
            NeuralNetwork([6, 0, 3])

    def test_deeper_network(self):
        net = NeuralNetwork([6, 16, 8, 3], rng=np.random.default_rng(1))
        assert len(net.weights) == 3
        assert net.count_parameters() == 6 * 16 + 16 + 16 * 8 + 8 + 8 * 3 + 3

    def test_same_seed_same_weights(self):
        a = NeuralNetwork([6, 12, 3], rng=np.random.default_rng(42))
        b = NeuralNetwork([6, 12, 3], rng=np.random.default_rng(42))
        for wa, wb in zip(a.weights, b.weights):
            np.testing.assert_array_equal(wa, wb)


class TestForwardPass:
    """Test forward pass."""

    def test_output_length(self, network, state):
        assert network.forward(state).shape == (3,)

    def test_softmax_sums_to_one(self, network):
        rng = np.random.default_rng(7)
        for _ in range(100):
            probs = network.forward(rng.random(6))
            assert abs(float(np.sum(probs)) - 1.0) < 1e-5
            assert np.all(probs >= 0.0)
            assert np.all(probs <= 1.0)

    def test_softmax_stable_for_large_outputs(self, network, state):
        """Huge raw outputs must not overflow to NaN."""
        network.weights[1][:] = 1000.0
        probs = network.forward(state * 100)
        assert np.all(np.isfinite(probs))
        assert abs(float(np.sum(probs)) - 1.0) < 1e-5

    def test_q_values_are_raw(self, network, state):
        """Q-values are the unnormalized last layer, consistent with softmax."""
        q = network.get_q_values(state)
        probs = network.forward(state)
        expected = np.exp(q - q.max()) / np.sum(np.exp(q - q.max()))
        np.testing.assert_allclose(probs, expected, atol=1e-5)

    def test_list_input_accepted(self, network):
        assert network.forward([0.1] * 6).shape == (3,)

    def test_wrong_size_returns_zeros(self, network):
        assert np.all(network.forward([0.1] * 5) == 0)
        assert np.all(network.get_q_values([0.1] * 7) == 0)
        assert network.get_q_values([0.1] * 7).shape == (3,)

    def test_activations_cached(self, network, state):
        network.forward(state)
        activations = network.get_activations()
        assert set(activations) == {'layer_0', 'layer_1', 'layer_2'}
        assert activations['layer_1'].shape == (12,)
        # ReLU hidden layer
        assert np.all(activations['layer_1'] >= 0)


class TestLearning:
    """Test gradient steps."""

    def test_update_q_value_converges(self, network, state):
        """Repeated updates toward a fixed target shrink the error."""
        target = 5.0
        errors = []
        for _ in range(500):
            network.update_q_value(state, 1, target, 0.01)
            errors.append(abs(float(network.get_q_values(state)[1]) - target))
        assert errors[-1] < errors[0]
        assert errors[-1] < 0.25

    def test_update_q_value_moves_toward_target(self, network, state):
        """One step raises the targeted Q-value when the target is above it."""
        before = network.get_q_values(state)
        network.update_q_value(state, 0, float(before[0]) + 1.0, 0.01)
        after = network.get_q_values(state)
        assert after[0] > before[0]

    def test_backward_without_forward_is_noop(self, network):
        weights = network.get_weights()
        network.backward([1.0, 1.0, 1.0], 0.1)
        for w_before, w_after in zip(weights, network.weights):
            np.testing.assert_array_equal(w_before, w_after)

    def test_backward_wrong_target_size_is_noop(self, network, state):
        network.forward(state)
        weights = network.get_weights()
        network.backward([1.0, 1.0], 0.1)
        for w_before, w_after in zip(weights, network.weights):
            np.testing.assert_array_equal(w_before, w_after)

    def test_update_invalid_action_is_noop(self, network, state):
        weights = network.get_weights()
        network.update_q_value(state, 3, 10.0, 0.1)
        network.update_q_value(state, -1, 10.0, 0.1)
        for w_before, w_after in zip(weights, network.weights):
            np.testing.assert_array_equal(w_before, w_after)

    def test_update_wrong_state_size_is_noop(self, network):
        weights = network.get_weights()
        network.update_q_value([0.5] * 4, 0, 10.0, 0.1)
        for w_before, w_after in zip(weights, network.weights):
            np.testing.assert_array_equal(w_before, w_after)


class TestParameterAccess:
    """Test cloning and parameter access."""

    def test_clone_is_identical(self, network, state):
        clone = network.clone()
        np.testing.assert_array_equal(clone.get_q_values(state), network.get_q_values(state))

    def test_clone_is_independent(self, network, state):
        clone = network.clone()
        for _ in range(20):
            clone.update_q_value(state, 0, 10.0, 0.05)
        assert not np.array_equal(clone.biases[-1], network.biases[-1])

    def test_get_weights_returns_copies(self, network):
        weights = network.get_weights()
        weights[0][:] = 99.0
        assert not np.any(network.weights[0] == 99.0)

    def test_set_parameters_rejects_wrong_shape(self, network):
        bad = [np.zeros((4, 6)), np.zeros((3, 4))]
        biases = [np.zeros(4), np.zeros(3)]
        assert network.set_parameters(bad, biases) is False

    def test_from_parameters(self, network, state):
        rebuilt = NeuralNetwork.from_parameters(network.get_weights(), network.get_biases())
        assert rebuilt.layer_sizes == network.layer_sizes
        np.testing.assert_array_equal(rebuilt.get_q_values(state), network.get_q_values(state))

    def test_layer_info(self, network):
        info = network.get_layer_info()
        assert [layer['type'] for layer in info] == ['input', 'hidden', 'output']
        assert info[1]['neurons'] == 12
