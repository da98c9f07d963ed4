"""
Dense feedforward network evolved by the trainer.

Weights are stored as one (fan_in, fan_out) matrix per layer boundary and
biases as one vector per layer. Hidden layers use a leaky rectifier; the
output layer is linear. Fitness and games played are annotations carried
alongside the parameters, not part of the math.
"""
from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

LEAKY_SLOPE = 0.01
DEFAULT_MUTATION_STRENGTH = 0.2
DEFAULT_WEIGHT_CLAMP = 5.0
DEFAULT_BIAS_CLAMP = 2.0

# Checkpoint field encodings (little-endian)
_INT = np.dtype("<i4")
_FLOAT = np.dtype("<f8")

Topology = Tuple[int, Tuple[int, ...], int]


class CheckpointError(ValueError):
    """Raised when checkpoint bytes are truncated or describe an inconsistent network."""


def leaky_relu(x: np.ndarray) -> np.ndarray:
    return np.where(x > 0, x, LEAKY_SLOPE * x)


class NeuralNetwork:
    """Multilayer perceptron with He-scaled Gaussian initialisation."""

    def __init__(self, input_size: int, hidden_sizes: Sequence[int], output_size: int,
                 rng: Optional[np.random.RandomState] = None,
                 initial_bias: float = 0.01) -> None:
        if input_size <= 0 or output_size <= 0 or any(h <= 0 for h in hidden_sizes):
            raise ValueError("Layer widths must be positive")
        self.input_size = int(input_size)
        self.hidden_sizes: List[int] = [int(h) for h in hidden_sizes]
        self.output_size = int(output_size)
        self.fitness: float = 0.0
        self.games_played: int = 0

        rnd = rng if rng is not None else np.random.RandomState()
        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        for fan_in, fan_out in self._layer_shapes():
            scale = np.sqrt(2.0 / fan_in)
            self.weights.append(rnd.randn(fan_in, fan_out) * scale)
            self.biases.append(np.full(fan_out, initial_bias, dtype=np.float64))

    def _layer_shapes(self) -> List[Tuple[int, int]]:
        sizes = [self.input_size] + self.hidden_sizes + [self.output_size]
        return list(zip(sizes[:-1], sizes[1:]))

    @property
    def topology(self) -> Topology:
        return self.input_size, tuple(self.hidden_sizes), self.output_size

    @property
    def num_parameters(self) -> int:
        return sum(w.size for w in self.weights) + sum(b.size for b in self.biases)

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------
    def feed_forward(self, inputs: Sequence[float]) -> np.ndarray:
        """Run one forward pass. Raises ValueError if the input width is wrong."""
        x = np.asarray(inputs, dtype=np.float64)
        if x.ndim != 1 or x.shape[0] != self.input_size:
            raise ValueError(
                f"Input size mismatch: expected {self.input_size}, got {x.shape[0] if x.ndim else 0}")

        last = len(self.weights) - 1
        for i, (w, b) in enumerate(zip(self.weights, self.biases)):
            x = x @ w + b
            if i < last:
                x = leaky_relu(x)
        return x

    # ------------------------------------------------------------------
    # Evolution operators
    # ------------------------------------------------------------------
    def mutate(self, rate: float, strength: float = DEFAULT_MUTATION_STRENGTH,
               rng: Optional[np.random.RandomState] = None,
               weight_clamp: float = DEFAULT_WEIGHT_CLAMP,
               bias_clamp: float = DEFAULT_BIAS_CLAMP) -> None:
        """Add Gaussian noise to each parameter with probability ``rate``, in place."""
        rnd = rng if rng is not None else np.random.RandomState()
        for w in self.weights:
            mask = rnd.rand(*w.shape) < rate
            w += mask * rnd.randn(*w.shape) * strength
            np.clip(w, -weight_clamp, weight_clamp, out=w)
        for b in self.biases:
            mask = rnd.rand(*b.shape) < rate
            b += mask * rnd.randn(*b.shape) * (strength * 0.5)
            np.clip(b, -bias_clamp, bias_clamp, out=b)

    def crossover(self, other: "NeuralNetwork", rate: float = 0.5,
                  rng: Optional[np.random.RandomState] = None) -> "NeuralNetwork":
        """Uniform crossover: each parameter comes from self with probability ``rate``."""
        if self.topology != other.topology:
            raise ValueError(f"Cannot cross {self.topology} with {other.topology}")
        rnd = rng if rng is not None else np.random.RandomState()
        child = self._empty_like()
        for mine, theirs in zip(self.weights, other.weights):
            child.weights.append(np.where(rnd.rand(*mine.shape) < rate, mine, theirs))
        for mine, theirs in zip(self.biases, other.biases):
            child.biases.append(np.where(rnd.rand(*mine.shape) < rate, mine, theirs))
        return child

    def _empty_like(self) -> "NeuralNetwork":
        net = object.__new__(NeuralNetwork)
        net.input_size = self.input_size
        net.hidden_sizes = list(self.hidden_sizes)
        net.output_size = self.output_size
        net.fitness = 0.0
        net.games_played = 0
        net.weights = []
        net.biases = []
        return net

    def clone(self) -> "NeuralNetwork":
        net = self._empty_like()
        net.weights = [w.copy() for w in self.weights]
        net.biases = [b.copy() for b in self.biases]
        net.fitness = self.fitness
        net.games_played = self.games_played
        return net

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def to_bytes(self) -> bytes:
        """
        Serialise to the checkpoint layout:

        input width, hidden count, hidden widths, output width (int32);
        per layer rows, cols (int32) then weights row-major (float64);
        per layer bias count (int32) then biases (float64);
        fitness (float64) and games played (int32).
        """
        parts = [np.array([self.input_size, len(self.hidden_sizes)] + self.hidden_sizes
                          + [self.output_size], dtype=_INT).tobytes()]
        for w in self.weights:
            parts.append(np.array(w.shape, dtype=_INT).tobytes())
            parts.append(np.ascontiguousarray(w, dtype=_FLOAT).tobytes())
        for b in self.biases:
            parts.append(np.array([b.size], dtype=_INT).tobytes())
            parts.append(np.ascontiguousarray(b, dtype=_FLOAT).tobytes())
        parts.append(np.array([self.fitness], dtype=_FLOAT).tobytes())
        parts.append(np.array([self.games_played], dtype=_INT).tobytes())
        return b"".join(parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> "NeuralNetwork":
        reader = _FieldReader(data)
        input_size = reader.read_int()
        hidden_count = reader.read_int()
        if hidden_count < 0:
            raise CheckpointError(f"Negative hidden layer count: {hidden_count}")
        hidden_sizes = [reader.read_int() for _ in range(hidden_count)]
        output_size = reader.read_int()
        if input_size <= 0 or output_size <= 0 or any(h <= 0 for h in hidden_sizes):
            raise CheckpointError("Checkpoint describes a non-positive layer width")

        net = object.__new__(cls)
        net.input_size = input_size
        net.hidden_sizes = hidden_sizes
        net.output_size = output_size
        net.weights = []
        net.biases = []

        for fan_in, fan_out in net._layer_shapes():
            rows, cols = reader.read_int(), reader.read_int()
            if (rows, cols) != (fan_in, fan_out):
                raise CheckpointError(
                    f"Weight matrix is {rows}x{cols}, expected {fan_in}x{fan_out}")
            net.weights.append(reader.read_floats(rows * cols).reshape(rows, cols))
        for _, fan_out in net._layer_shapes():
            count = reader.read_int()
            if count != fan_out:
                raise CheckpointError(f"Bias vector has {count} entries, expected {fan_out}")
            net.biases.append(reader.read_floats(count))

        net.fitness = float(reader.read_floats(1)[0])
        net.games_played = reader.read_int()
        if not reader.exhausted:
            raise CheckpointError("Trailing bytes after checkpoint")
        return net

    def save(self, path: str) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "wb") as f:
            f.write(self.to_bytes())
        logger.info("Network saved to %s", path)

    @classmethod
    def load(cls, path: str) -> "NeuralNetwork":
        with open(path, "rb") as f:
            net = cls.from_bytes(f.read())
        logger.info("Network loaded from %s (topology %s)", path, net.topology)
        return net

    def __repr__(self) -> str:
        return (f"NeuralNetwork(topology={self.topology}, fitness={self.fitness:.2f}, "
                f"games_played={self.games_played})")


class _FieldReader:
    """Sequential reader over little-endian checkpoint fields."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    def _take(self, dtype: np.dtype, count: int) -> np.ndarray:
        size = dtype.itemsize * count
        if self._offset + size > len(self._data):
            raise CheckpointError("Checkpoint data is truncated")
        values = np.frombuffer(self._data, dtype=dtype, count=count, offset=self._offset)
        self._offset += size
        return values

    def read_int(self) -> int:
        return int(self._take(_INT, 1)[0])

    def read_floats(self, count: int) -> np.ndarray:
        return self._take(_FLOAT, count).astype(np.float64)

    @property
    def exhausted(self) -> bool:
        return self._offset == len(self._data)
