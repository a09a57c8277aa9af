"""
errors.py
~~~~~~~~~

Exceptions raised by the network and its binary codec.
"""

from typing import Any, Optional


class VenturiError(Exception):
    """Base class for every error raised by venturi."""


class ConfigurationError(VenturiError):
    """The network is missing something it needs, e.g. an activation."""


class ShapeMismatchError(VenturiError, ValueError):
    """
    A vector or matrix does not match the network's declared node counts.

    Attributes:
        expected: The shape or length the network required
        actual: The shape or length that was supplied
    """

    def __init__(
        self,
        message: str,
        expected: Optional[Any] = None,
        actual: Optional[Any] = None
    ):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class DecodeError(VenturiError, ValueError):
    """A serialized network is truncated or malformed."""


class EncodeError(VenturiError, ValueError):
    """A network cannot be written in the binary layout."""
