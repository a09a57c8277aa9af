"""
codec.py
~~~~~~~~

Fixed binary layout for trained networks.

All fields are big-endian, with no magic number and no version byte::

    u16  input_nodes
    u16  hidden_nodes
    u16  output_nodes
    f32  learning_rate
    f32  weights[0] entries, row-major (hidden_nodes * input_nodes)
    f32  weights[1] entries, row-major (output_nodes * hidden_nodes)

The activation function is behaviour, not data, and is never written.
Decoded networks come back without one unless the caller supplies it.
"""

import io
import logging
import math
import os
import struct
from typing import BinaryIO, Optional, Union

import numpy as np

from venturi.errors import DecodeError, EncodeError
from venturi.network import ActivationSpec, Network

logger = logging.getLogger(__name__)

HEADER = struct.Struct('>HHHf')
WEIGHT_DTYPE = np.dtype('>f4')
MAX_NODES = 0xFFFF
READ_CHUNK = 1 << 20

PathLike = Union[str, os.PathLike]


def encoded_size(input_nodes: int, hidden_nodes: int, output_nodes: int) -> int:
    """Number of bytes the layout takes for a network of the given shape."""
    weights = hidden_nodes * input_nodes + output_nodes * hidden_nodes
    return HEADER.size + WEIGHT_DTYPE.itemsize * weights


def write_network(network: Network, stream: BinaryIO) -> int:
    """
    Write a network to a binary stream.

    Args:
        network: Network to serialize
        stream: Writable binary file-like object

    Returns:
        int: Number of bytes written

    Raises:
        EncodeError: If a node count does not fit in 16 bits
    """
    for name, count in zip(('input', 'hidden', 'output'), network.sizes):
        if count > MAX_NODES:
            raise EncodeError(
                f"{name}_nodes={count} exceeds the format limit of {MAX_NODES}"
            )

    header = HEADER.pack(*network.sizes, network.learning_rate)
    weights_ih, weights_ho = network.weights

    stream.write(header)
    stream.write(weights_ih.astype(WEIGHT_DTYPE).tobytes(order='C'))
    stream.write(weights_ho.astype(WEIGHT_DTYPE).tobytes(order='C'))

    written = encoded_size(*network.sizes)
    logger.debug(f"Encoded network {network.sizes} into {written} bytes")
    return written


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(min(remaining, READ_CHUNK))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)

    data = b''.join(chunks)
    if len(data) != size:
        raise DecodeError(
            f"Truncated network data: expected {size} bytes of {what}, "
            f"got {len(data)}"
        )
    return data


def _read_matrix(stream: BinaryIO, rows: int, cols: int, what: str) -> np.ndarray:
    raw = _read_exact(stream, rows * cols * WEIGHT_DTYPE.itemsize, what)
    matrix = np.frombuffer(raw, dtype=WEIGHT_DTYPE).reshape(rows, cols)
    return matrix.astype(np.float32)


def read_network(
    stream: BinaryIO,
    activation: ActivationSpec = None
) -> Network:
    """
    Read one network from a binary stream.

    Exactly the bytes of one encoded network are consumed.

    Args:
        stream: Readable binary file-like object
        activation: Activation to attach to the decoded network

    Returns:
        Network: The decoded network

    Raises:
        DecodeError: If the stream is short or holds invalid values
    """
    header = _read_exact(stream, HEADER.size, 'header')
    input_nodes, hidden_nodes, output_nodes, learning_rate = HEADER.unpack(header)

    if not math.isfinite(learning_rate) or learning_rate <= 0:
        raise DecodeError(f"Invalid learning rate in header: {learning_rate}")

    weights_ih = _read_matrix(stream, hidden_nodes, input_nodes, 'weights[0]')
    weights_ho = _read_matrix(stream, output_nodes, hidden_nodes, 'weights[1]')

    network = Network.from_weights(
        weights_ih, weights_ho, learning_rate, activation
    )
    logger.debug(f"Decoded network {network.sizes}")
    return network


def encode(network: Network) -> bytes:
    """Serialize a network to bytes."""
    buffer = io.BytesIO()
    write_network(network, buffer)
    return buffer.getvalue()


def decode(data: bytes, activation: ActivationSpec = None) -> Network:
    """
    Deserialize a network from bytes.

    Raises:
        DecodeError: If data is short, malformed or has trailing bytes
    """
    buffer = io.BytesIO(data)
    network = read_network(buffer, activation)
    trailing = len(data) - buffer.tell()
    if trailing:
        raise DecodeError(f"{trailing} unexpected trailing byte(s)")
    return network


def save_network_file(network: Network, path: PathLike) -> int:
    """
    Write a network to a file, replacing any existing file.

    Returns:
        int: Number of bytes written
    """
    with open(path, 'wb') as f:
        return write_network(network, f)


def load_network_file(
    path: PathLike,
    activation: Optional[ActivationSpec] = None
) -> Network:
    """
    Load a network written by save_network_file.

    Raises:
        FileNotFoundError: If path does not exist
        DecodeError: If the file content is not a valid network
    """
    with open(path, 'rb') as f:
        return decode(f.read(), activation)
