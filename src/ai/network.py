"""
Feed-Forward Q-Network
======================

A small fully-connected network written directly on numpy arrays, with
hand-derived backpropagation. It approximates Q-values for the three paddle
actions given the 6-value normalized game state.

Theory:
    Q-Learning aims to learn Q(s, a) = expected future reward
    The network maps a state to one Q-value per action

    Input:  State vector (ball pos, ball direction, paddle pos)
    Output: Q-value for each possible action (up, stay, down)

Training moves the chosen action's Q-value toward the TD target:
    target = r + γ * max_a' Q(s', a')

Key Features:
    - Arbitrary layer sizes (input, hidden..., output)
    - ReLU hidden layers, raw linear output for Q-values
    - Softmax output for probability-style queries
    - Xavier/Glorot uniform initialization
    - Plain gradient step, no momentum or regularization
"""

from typing import List, Optional, Dict, Sequence

import numpy as np


class NeuralNetwork:
    """
    Fully-connected network with manual backpropagation.

    Architecture:
        Input Layer → Hidden Layers (ReLU) → Output Layer

    Weights for layer i are stored as a (out × in) float32 matrix so that
    forward propagation is a single matrix-vector product per layer.

    Attributes:
        layer_sizes (List[int]): Neurons per layer, input first
        weights (List[np.ndarray]): Weight matrices, one per connection
        biases (List[np.ndarray]): Bias vectors, one per non-input layer

    Example:
        >>> net = NeuralNetwork([6, 12, 3])
        >>> q_values = net.get_q_values([0.5] * 6)  # Shape: (3,)
    """

    def __init__(
        self,
        layer_sizes: Sequence[int],
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the network.

        Args:
            layer_sizes: Neurons per layer; at least input, one hidden and output
            rng: Random generator used for weight initialization
        """
        if len(layer_sizes) < 3:
            raise ValueError(f"Need at least 3 layers, got {len(layer_sizes)}")
        if any(int(size) <= 0 for size in layer_sizes):
            raise ValueError(f"Layer sizes must be positive: {list(layer_sizes)}")

        self._layer_sizes = [int(size) for size in layer_sizes]
        self._rng = rng if rng is not None else np.random.default_rng()

        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        self._init_weights()

        # Cache of the most recent forward pass (used by backward)
        self._activations: List[np.ndarray] = []
        self._pre_activations: List[np.ndarray] = []

    def _init_weights(self) -> None:
        """
        Initialize weights using Xavier/Glorot uniform initialization.
        Biases start at zero.
        """
        self.weights = []
        self.biases = []
        for fan_in, fan_out in zip(self._layer_sizes[:-1], self._layer_sizes[1:]):
            limit = np.sqrt(6.0 / (fan_in + fan_out))
            w = self._rng.uniform(-limit, limit, size=(fan_out, fan_in))
            self.weights.append(w.astype(np.float32))
            self.biases.append(np.zeros(fan_out, dtype=np.float32))

    # -------------------------------------------------------------------------
    # Shape accessors
    # -------------------------------------------------------------------------

    @property
    def layer_sizes(self) -> List[int]:
        return list(self._layer_sizes)

    @property
    def input_size(self) -> int:
        return self._layer_sizes[0]

    @property
    def output_size(self) -> int:
        return self._layer_sizes[-1]

    @property
    def hidden_size(self) -> int:
        """Size of the first hidden layer."""
        return self._layer_sizes[1]

    # -------------------------------------------------------------------------
    # Forward pass
    # -------------------------------------------------------------------------

    def _propagate(self, inputs: np.ndarray) -> np.ndarray:
        """Run a forward pass, refresh the cache and return raw output values."""
        activations = [inputs]
        pre_activations = []

        x = inputs
        last = len(self.weights) - 1
        for i, (w, b) in enumerate(zip(self.weights, self.biases)):
            z = w @ x + b
            pre_activations.append(z)
            x = z if i == last else np.maximum(z, 0.0)
            activations.append(x)

        self._activations = activations
        self._pre_activations = pre_activations
        return pre_activations[-1]

    def _as_input(self, values) -> Optional[np.ndarray]:
        arr = np.asarray(values, dtype=np.float32).reshape(-1)
        if arr.shape[0] != self.input_size:
            return None
        return arr

    def forward(self, inputs) -> np.ndarray:
        """
        Forward pass returning softmax probabilities.

        Args:
            inputs: State vector of length input_size

        Returns:
            Probability vector of length output_size, or zeros on a size mismatch
        """
        x = self._as_input(inputs)
        if x is None:
            return np.zeros(self.output_size, dtype=np.float32)

        z = self._propagate(x)
        exp = np.exp(z - np.max(z))
        return (exp / np.sum(exp)).astype(np.float32)

    def get_q_values(self, inputs) -> np.ndarray:
        """
        Forward pass returning raw output values (Q-values).

        Returns:
            Q-value vector of length output_size, or zeros on a size mismatch
        """
        x = self._as_input(inputs)
        if x is None:
            return np.zeros(self.output_size, dtype=np.float32)
        return self._propagate(x).copy()

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def backward(self, target, learning_rate: float) -> None:
        """
        One gradient step toward the target, using the most recent forward pass.

        The output error is (target - output); it is propagated back through
        the transposed weights and the ReLU derivative. Weights move by
        lr * delta ⊗ previous_activation, biases by lr * delta.

        Args:
            target: Desired output vector of length output_size
            learning_rate: Step size
        """
        target = np.asarray(target, dtype=np.float32).reshape(-1)
        if target.shape[0] != self.output_size or not self._pre_activations:
            return

        delta = target - self._pre_activations[-1]
        for i in range(len(self.weights) - 1, -1, -1):
            prev_activation = self._activations[i]
            # Propagate before this layer's weights change
            if i > 0:
                upstream = self.weights[i].T @ delta
                upstream *= (self._pre_activations[i - 1] > 0).astype(np.float32)
            self.weights[i] += (learning_rate * np.outer(delta, prev_activation)).astype(np.float32)
            self.biases[i] += (learning_rate * delta).astype(np.float32)
            if i > 0:
                delta = upstream

    def update_q_value(self, state, action: int, target_q: float, learning_rate: float) -> None:
        """
        Move Q(state, action) toward target_q, leaving other actions' targets
        at their current predictions.
        """
        x = self._as_input(state)
        if x is None or not 0 <= action < self.output_size:
            return
        target = self._propagate(x).copy()
        target[action] = target_q
        self.backward(target, learning_rate)

    # -------------------------------------------------------------------------
    # Copying and parameter access
    # -------------------------------------------------------------------------

    def clone(self) -> 'NeuralNetwork':
        """Return an independent copy (no shared buffers)."""
        seed = int(self._rng.integers(0, 2**63 - 1))
        copy = NeuralNetwork(self._layer_sizes, rng=np.random.default_rng(seed))
        copy.set_parameters(self.weights, self.biases)
        return copy

    @classmethod
    def from_parameters(
        cls,
        weights: Sequence[np.ndarray],
        biases: Sequence[np.ndarray],
        rng: Optional[np.random.Generator] = None,
    ) -> 'NeuralNetwork':
        """Build a network whose layer sizes are implied by the given weights."""
        if not weights:
            raise ValueError("At least one weight matrix is required")
        sizes = [int(np.shape(weights[0])[1])] + [int(np.shape(w)[0]) for w in weights]
        net = cls(sizes, rng=rng)
        if not net.set_parameters(weights, biases):
            raise ValueError("Weights and biases have inconsistent shapes")
        return net

    def set_parameters(self, weights: Sequence[np.ndarray], biases: Sequence[np.ndarray]) -> bool:
        """
        Copy weights and biases into this network.

        Returns:
            True if every shape matched and the parameters were replaced
        """
        if len(weights) != len(self.weights) or len(biases) != len(self.biases):
            return False
        for i, (w, b) in enumerate(zip(weights, biases)):
            if np.shape(w) != self.weights[i].shape or np.shape(b) != self.biases[i].shape:
                return False
        self.weights = [np.array(w, dtype=np.float32, copy=True) for w in weights]
        self.biases = [np.array(b, dtype=np.float32, copy=True) for b in biases]
        self._activations = []
        self._pre_activations = []
        return True

    def get_weights(self) -> List[np.ndarray]:
        """
        Get all weight matrices as numpy arrays.

        Returns:
            List of weight matrix copies (out × in)
        """
        return [w.copy() for w in self.weights]

    def get_biases(self) -> List[np.ndarray]:
        return [b.copy() for b in self.biases]

    def get_activations(self) -> Dict[str, np.ndarray]:
        """
        Get the activations cached by the most recent forward pass.

        Returns:
            Dict mapping layer names to activation arrays
        """
        return {f'layer_{i}': a.copy() for i, a in enumerate(self._activations)}

    def get_layer_info(self) -> List[Dict]:
        """
        Get information about each layer for display.

        Returns:
            List of dicts with layer metadata
        """
        info = [{'name': 'Input', 'neurons': self.input_size, 'type': 'input'}]
        for i, size in enumerate(self._layer_sizes[1:-1]):
            info.append({'name': f'Hidden {i + 1}', 'neurons': size, 'type': 'hidden'})
        info.append({'name': 'Output', 'neurons': self.output_size, 'type': 'output'})
        return info

    def count_parameters(self) -> int:
        """Return total number of trainable parameters."""
        return sum(w.size for w in self.weights) + sum(b.size for b in self.biases)

    def __repr__(self) -> str:
        return f"NeuralNetwork({' → '.join(str(s) for s in self._layer_sizes)})"
