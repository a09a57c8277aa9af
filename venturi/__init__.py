"""
venturi package
~~~~~~~~~~~~~~~

Single hidden layer feed-forward neural network with backpropagation
training and a fixed binary format for trained weights. Also ships the
dataset helpers, SQLite model store, API server and command line driver.
"""

from venturi.activations import Activation, sigmoid, tanh
from venturi.errors import (
    VenturiError,
    ConfigurationError,
    ShapeMismatchError,
    DecodeError,
    EncodeError
)
from venturi.network import Network, DEFAULT_LEARNING_RATE

__version__ = "1.0.0"

__all__ = [
    'Activation',
    'sigmoid',
    'tanh',
    'Network',
    'DEFAULT_LEARNING_RATE',
    'VenturiError',
    'ConfigurationError',
    'ShapeMismatchError',
    'DecodeError',
    'EncodeError',
]
