"""
activations.py
~~~~~~~~~~~~~~

Activation functions for the network's hidden and output layers.

Both functions work on Python scalars and on numpy arrays (elementwise).
The ``Activation`` enumeration pairs each function with its derivative so
that training always uses the gradient of the function actually attached
to the network.
"""

from enum import Enum
from typing import Union

import numpy as np

ArrayLike = Union[float, np.ndarray]


def sigmoid(x: ArrayLike) -> ArrayLike:
    """
    The logistic sigmoid, mapping any input into the range (0.0, 1.0).

    Args:
        x: Scalar or array of node inputs

    Returns:
        1 / (1 + e^-x), with the same shape as x
    """
    # Large negative inputs overflow exp() to inf, which still yields 0.0
    with np.errstate(over='ignore'):
        return 1.0 / (1.0 + np.exp(-x))


def tanh(x: ArrayLike) -> ArrayLike:
    """
    The hyperbolic tangent, mapping any input into the range (-1.0, 1.0).

    Args:
        x: Scalar or array of node inputs

    Returns:
        (e^x - e^-x) / (e^x + e^-x), with the same shape as x
    """
    return np.tanh(x)


def sigmoid_derivative(y: ArrayLike) -> ArrayLike:
    """Derivative of sigmoid written in terms of its output y."""
    return y * (1.0 - y)


def tanh_derivative(y: ArrayLike) -> ArrayLike:
    """Derivative of tanh written in terms of its output y."""
    return 1.0 - y * y


class Activation(Enum):
    """Activation functions a Network can be configured with."""

    SIGMOID = 'sigmoid'
    TANH = 'tanh'

    def __call__(self, x: ArrayLike) -> ArrayLike:
        return _FORWARD[self](x)

    def derivative(self, y: ArrayLike) -> ArrayLike:
        """
        Gradient of the activation at an already activated output.

        Args:
            y: Output of this activation function

        Returns:
            f'(x) expressed through y = f(x)
        """
        return _DERIVATIVE[self](y)

    @classmethod
    def from_name(cls, name: str) -> 'Activation':
        """
        Look up an activation by name, ignoring case.

        Raises:
            ValueError: If the name is not a known activation
        """
        try:
            return cls(name.strip().lower())
        except (AttributeError, ValueError):
            known = ', '.join(member.value for member in cls)
            raise ValueError(
                f"Unknown activation {name!r}, expected one of: {known}"
            ) from None


_FORWARD = {
    Activation.SIGMOID: sigmoid,
    Activation.TANH: tanh,
}

_DERIVATIVE = {
    Activation.SIGMOID: sigmoid_derivative,
    Activation.TANH: tanh_derivative,
}
