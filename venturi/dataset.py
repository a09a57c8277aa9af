"""
dataset.py
~~~~~~~~~~

Helpers that turn CSV records into network inputs and targets.

Each record is one line of comma separated integers. By default the label
comes first (``label,pixel1,pixel2,...``, the MNIST CSV layout) and raw
0-255 pixel values are scaled into [0.01, 1.0] so that no input is zero.
"""

import logging
import os
from typing import Iterator, List, NamedTuple, Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

TARGET_LOW = 0.01
TARGET_HIGH = 0.99


class Sample(NamedTuple):
    """One labelled input vector."""
    label: int
    inputs: np.ndarray


def normalize_pixels(values: Sequence[float]) -> np.ndarray:
    """Scale raw 0-255 values into the [0.01, 1.0] range."""
    pixels = np.asarray(values, dtype=np.float32)
    return pixels / np.float32(255.0) * np.float32(0.99) + np.float32(0.01)


def one_hot(
    label: int,
    size: int = 10,
    low: float = TARGET_LOW,
    high: float = TARGET_HIGH
) -> np.ndarray:
    """
    Target vector with ``high`` at the label index and ``low`` elsewhere.

    Raises:
        ValueError: If label is outside [0, size)
    """
    if not 0 <= label < size:
        raise ValueError(f"Label {label} out of range for {size} outputs")
    targets = np.full(size, low, dtype=np.float32)
    targets[label] = high
    return targets


def parse_record(
    line: str,
    label_last: bool = False,
    normalize: bool = True
) -> Sample:
    """
    Parse one CSV record.

    Args:
        line: Comma separated record
        label_last: Label is the last field instead of the first
        normalize: Scale values with normalize_pixels

    Returns:
        Sample: The label and the input vector

    Raises:
        ValueError: If the record is empty or has non-numeric fields
    """
    fields = [field.strip() for field in line.strip().split(',')]
    if len(fields) < 2:
        raise ValueError(f"Record needs a label and at least one value: {line!r}")

    label_field = fields.pop() if label_last else fields.pop(0)
    try:
        label = int(label_field)
        values = [float(field) for field in fields]
    except ValueError:
        raise ValueError(f"Record has non-numeric fields: {line[:60]!r}") from None

    if normalize:
        inputs = normalize_pixels(values)
    else:
        inputs = np.asarray(values, dtype=np.float32)
    return Sample(label, inputs)


def iter_records(
    path: Union[str, os.PathLike],
    label_last: bool = False,
    normalize: bool = True
) -> Iterator[Sample]:
    """Yield a Sample per non-blank line of a CSV file."""
    with open(path, 'r') as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                yield parse_record(line, label_last, normalize)
            except ValueError as e:
                raise ValueError(f"{path}:{line_number}: {e}") from None


def load_records(
    path: Union[str, os.PathLike],
    label_last: bool = False,
    normalize: bool = True
) -> List[Sample]:
    """Read every record of a CSV file into memory."""
    samples = list(iter_records(path, label_last, normalize))
    logger.info(f"Loaded {len(samples)} record(s) from {path}")
    return samples


def render_ascii(inputs: Sequence[float], width: int = 28) -> str:
    """
    Draw a normalized image as text, one row per line.

    Values above 0.65 are drawn as '*', above 0.1 as '.', the rest blank.
    """
    pixels = np.asarray(inputs, dtype=np.float32).ravel()
    if width <= 0 or pixels.size % width:
        raise ValueError(
            f"Cannot lay out {pixels.size} values in rows of {width}"
        )

    rows = []
    for row in pixels.reshape(-1, width):
        rows.append(''.join(
            '*' if value > 0.65 else '.' if value > 0.1 else ' '
            for value in row
        ))
    return '\n'.join(rows)
