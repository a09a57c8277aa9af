"""
network.py
~~~~~~~~~~

A feed-forward neural network with exactly one hidden layer, trained one
sample at a time with stochastic gradient descent and backpropagation.

Weights are held as two float32 matrices:

- ``weights[0]`` (hidden_nodes x input_nodes): input to hidden
- ``weights[1]`` (output_nodes x hidden_nodes): hidden to output

Inputs and targets are flat sequences; they are reshaped into column
vectors after their length has been checked against the node counts.
"""

import logging
import math
from numbers import Integral, Real
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from venturi.activations import Activation
from venturi.errors import ConfigurationError, ShapeMismatchError

logger = logging.getLogger(__name__)

DEFAULT_LEARNING_RATE = 0.3

ActivationSpec = Optional[Union[Activation, str]]


def _check_node_count(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return int(value)


def _check_learning_rate(value) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValueError(f"learning_rate must be a number, got {value!r}")
    # Checked at the precision the binary format keeps
    with np.errstate(over='ignore'):
        rounded = float(np.float32(value))
    if not math.isfinite(rounded) or rounded <= 0:
        raise ValueError(
            f"learning_rate must be a positive finite float32, got {value}"
        )
    return rounded


def _coerce_activation(activation: ActivationSpec) -> Optional[Activation]:
    if activation is None or isinstance(activation, Activation):
        return activation
    if isinstance(activation, str):
        return Activation.from_name(activation)
    raise TypeError(
        f"activation must be an Activation, a name or None, "
        f"got {type(activation).__name__}"
    )


def _read_only(array: np.ndarray) -> np.ndarray:
    view = array.view()
    view.flags.writeable = False
    return view


class Network:
    """
    Single hidden layer network with a fixed shape.

    Example:
        >>> net = Network(784, 100, 10, 0.3, Activation.SIGMOID)
        >>> net.train(pixels, targets)
        >>> output = net.query(pixels)
    """

    def __init__(
        self,
        input_nodes: int,
        hidden_nodes: int,
        output_nodes: int,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        activation: ActivationSpec = Activation.SIGMOID,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Create a network with random weights drawn from (-0.5, 0.5).

        Args:
            input_nodes: Length of the input vector
            hidden_nodes: Number of hidden nodes
            output_nodes: Length of the output vector
            learning_rate: Gradient step size
            activation: Activation used by both layers, or None
            rng: Generator used for weight initialization

        Raises:
            ValueError: If a node count or the learning rate is invalid
        """
        input_nodes = _check_node_count('input_nodes', input_nodes)
        hidden_nodes = _check_node_count('hidden_nodes', hidden_nodes)
        output_nodes = _check_node_count('output_nodes', output_nodes)

        if rng is None:
            rng = np.random.default_rng()

        weights_ih = rng.random(
            (hidden_nodes, input_nodes), dtype=np.float32
        ) - np.float32(0.5)
        weights_ho = rng.random(
            (output_nodes, hidden_nodes), dtype=np.float32
        ) - np.float32(0.5)

        self._assign(weights_ih, weights_ho, learning_rate, activation)
        logger.debug(f"Created network with sizes {self.sizes}")

    @classmethod
    def default(cls) -> 'Network':
        """
        An unconfigured network: no nodes, default learning rate and no
        activation. Useful as a placeholder before loading weights.
        """
        empty = np.zeros((0, 0), dtype=np.float32)
        return cls.from_weights(empty, empty, DEFAULT_LEARNING_RATE, None)

    @classmethod
    def from_weights(
        cls,
        weights_ih,
        weights_ho,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        activation: ActivationSpec = None
    ) -> 'Network':
        """
        Rebuild a network from explicit weight matrices.

        Node counts are taken from the matrix shapes.

        Args:
            weights_ih: Input to hidden matrix, shape (hidden, input)
            weights_ho: Hidden to output matrix, shape (output, hidden)
            learning_rate: Gradient step size
            activation: Activation to attach, or None

        Raises:
            ShapeMismatchError: If the two matrices disagree on hidden_nodes
        """
        network = cls.__new__(cls)
        network._assign(weights_ih, weights_ho, learning_rate, activation)
        return network

    @classmethod
    def from_bytes(cls, data: bytes, activation: ActivationSpec = None):
        """Decode a network from the binary layout. See venturi.codec."""
        from venturi import codec

        network = codec.decode(data)
        network.set_activation(activation)
        return network

    def to_bytes(self) -> bytes:
        """Encode this network in the binary layout. See venturi.codec."""
        from venturi import codec

        return codec.encode(self)

    def _assign(self, weights_ih, weights_ho, learning_rate, activation):
        weights_ih = self._as_matrix(weights_ih, 'weights_ih')
        weights_ho = self._as_matrix(weights_ho, 'weights_ho')
        if weights_ih.shape[0] != weights_ho.shape[1]:
            raise ShapeMismatchError(
                f"weights_ih has {weights_ih.shape[0]} hidden rows but "
                f"weights_ho has {weights_ho.shape[1]} hidden columns",
                expected=weights_ih.shape[0],
                actual=weights_ho.shape[1]
            )

        self._input_nodes = weights_ih.shape[1]
        self._hidden_nodes = weights_ih.shape[0]
        self._output_nodes = weights_ho.shape[0]
        self._learning_rate = _check_learning_rate(learning_rate)
        self._weights = (weights_ih, weights_ho)
        self._activation = _coerce_activation(activation)

    @staticmethod
    def _as_matrix(weights, name: str) -> np.ndarray:
        matrix = np.array(weights, dtype=np.float32)
        if matrix.ndim != 2:
            raise ShapeMismatchError(
                f"{name} must be a 2-D matrix, got {matrix.ndim} dimension(s)",
                expected=2,
                actual=matrix.ndim
            )
        return matrix

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def input_nodes(self) -> int:
        return self._input_nodes

    @property
    def hidden_nodes(self) -> int:
        return self._hidden_nodes

    @property
    def output_nodes(self) -> int:
        return self._output_nodes

    @property
    def sizes(self) -> list:
        """Layer sizes as [input, hidden, output]."""
        return [self._input_nodes, self._hidden_nodes, self._output_nodes]

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @property
    def weights(self) -> Tuple[np.ndarray, np.ndarray]:
        """Read-only views of (input->hidden, hidden->output) weights."""
        return tuple(_read_only(w) for w in self._weights)

    @property
    def activation(self) -> Optional[Activation]:
        return self._activation

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_weights(self, weights, layer: int) -> None:
        """
        Replace a whole weight matrix.

        Args:
            weights: New matrix (nested sequences or ndarray)
            layer: 0 for input->hidden, 1 for hidden->output

        Raises:
            ValueError: If layer is not 0 or 1
            ShapeMismatchError: If the matrix shape does not fit the layer
        """
        if isinstance(layer, bool):
            raise ValueError(f"layer must be 0 or 1, got {layer!r}")
        if layer == 0:
            expected = (self._hidden_nodes, self._input_nodes)
        elif layer == 1:
            expected = (self._output_nodes, self._hidden_nodes)
        else:
            raise ValueError(f"layer must be 0 or 1, got {layer!r}")

        matrix = self._as_matrix(weights, f'weights[{layer}]')
        if matrix.shape != expected:
            raise ShapeMismatchError(
                f"weights[{layer}] must have shape {expected}, "
                f"got {matrix.shape}",
                expected=expected,
                actual=matrix.shape
            )

        updated = list(self._weights)
        updated[layer] = matrix
        self._weights = tuple(updated)

    def set_activation(self, activation: ActivationSpec) -> None:
        """Attach an activation (enum member or name), or None to detach."""
        self._activation = _coerce_activation(activation)

    # ------------------------------------------------------------------
    # Inference and training
    # ------------------------------------------------------------------

    def _require_activation(self) -> Activation:
        if self._activation is None:
            raise ConfigurationError("Activation function not set")
        return self._activation

    @staticmethod
    def _column(values: Sequence[float], length: int, name: str) -> np.ndarray:
        vector = np.asarray(values, dtype=np.float32)
        if vector.ndim == 2 and vector.shape[1] == 1:
            vector = vector[:, 0]
        if vector.ndim != 1 or vector.shape[0] != length:
            raise ShapeMismatchError(
                f"{name} must be a flat vector of length {length}, "
                f"got shape {vector.shape}",
                expected=length,
                actual=vector.shape
            )
        return vector.reshape(length, 1)

    def query_hidden(self, inputs: Sequence[float]) -> np.ndarray:
        """
        Activations of the hidden layer for one input vector.

        Args:
            inputs: Flat sequence of input_nodes values

        Returns:
            Column vector of shape (hidden_nodes, 1)

        Raises:
            ConfigurationError: If no activation is attached
            ShapeMismatchError: If inputs has the wrong length
        """
        activation = self._require_activation()
        x = self._column(inputs, self._input_nodes, 'inputs')
        return activation(np.dot(self._weights[0], x))

    def query(self, inputs: Sequence[float]) -> np.ndarray:
        """
        Full forward pass for one input vector.

        Args:
            inputs: Flat sequence of input_nodes values

        Returns:
            Column vector of shape (output_nodes, 1)

        Raises:
            ConfigurationError: If no activation is attached
            ShapeMismatchError: If inputs has the wrong length
        """
        activation = self._require_activation()
        x = self._column(inputs, self._input_nodes, 'inputs')
        hidden = activation(np.dot(self._weights[0], x))
        return activation(np.dot(self._weights[1], hidden))

    def train(self, inputs: Sequence[float], targets: Sequence[float]) -> None:
        """
        Run one step of gradient descent on a single (inputs, targets) pair.

        The output error is spread back to the hidden layer through the
        transposed hidden->output weights. Both weight updates are computed
        from the weights as they were before the call and are committed
        together, so a failed call never leaves a half-updated network.

        Args:
            inputs: Flat sequence of input_nodes values
            targets: Flat sequence of output_nodes expected outputs

        Raises:
            ConfigurationError: If no activation is attached
            ShapeMismatchError: If inputs or targets have the wrong length
        """
        activation = self._require_activation()
        x = self._column(inputs, self._input_nodes, 'inputs')
        t = self._column(targets, self._output_nodes, 'targets')
        weights_ih, weights_ho = self._weights

        hidden = activation(np.dot(weights_ih, x))
        outputs = activation(np.dot(weights_ho, hidden))

        errors_output = t - outputs
        errors_hidden = np.dot(weights_ho.T, errors_output)

        gradient_ho = errors_output * activation.derivative(outputs)
        gradient_ih = errors_hidden * activation.derivative(hidden)
        delta_ho = self._learning_rate * np.dot(gradient_ho, hidden.T)
        delta_ih = self._learning_rate * np.dot(gradient_ih, x.T)

        self._weights = (
            (weights_ih + delta_ih).astype(np.float32, copy=False),
            (weights_ho + delta_ho).astype(np.float32, copy=False)
        )

    def __repr__(self) -> str:
        activation = self._activation.value if self._activation else None
        return (
            f"Network(sizes={self.sizes}, "
            f"learning_rate={self._learning_rate}, "
            f"activation={activation})"
        )
