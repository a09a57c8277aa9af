"""
training.py
~~~~~~~~~~~

Epoch loop and accuracy measurement on top of Network.train/query.

Training is online: every sample updates the weights immediately.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np

from venturi.dataset import Sample, one_hot
from venturi.network import Network

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], None]


def predict(network: Network, inputs) -> int:
    """Index of the strongest output node."""
    return int(np.argmax(network.query(inputs)))


def evaluate(network: Network, samples: Sequence[Sample]) -> int:
    """
    Count the samples whose label matches the network's prediction.

    Args:
        network: Network with an activation attached
        samples: Labelled samples

    Returns:
        int: Number of correct predictions
    """
    return sum(
        1 for sample in samples
        if predict(network, sample.inputs) == sample.label
    )


def train_samples(
    network: Network,
    samples: Sequence[Sample],
    epochs: int = 1,
    test_samples: Optional[Sequence[Sample]] = None,
    callback: Optional[ProgressCallback] = None,
    yield_func: Optional[Callable[[], None]] = None,
    on_sample: Optional[Callable[[Sample], None]] = None
) -> None:
    """
    Train a network on labelled samples with one-hot targets.

    Args:
        network: Network to train in place
        samples: Training samples; labels index the output nodes
        epochs: Number of passes over samples
        test_samples: Samples scored after each epoch, defaults to samples;
            an empty sequence skips scoring
        callback: Receives a progress dict after each epoch
        yield_func: Called after every sample so other tasks can run
        on_sample: Receives each sample once it has been trained on

    Raises:
        ValueError: If epochs is not positive or a label is out of range
    """
    if epochs < 1:
        raise ValueError(f"epochs must be positive, got {epochs}")

    scored = samples if test_samples is None else test_samples
    start = time.time()

    for epoch in range(1, epochs + 1):
        for sample in samples:
            targets = one_hot(sample.label, network.output_nodes)
            network.train(sample.inputs, targets)
            if on_sample is not None:
                on_sample(sample)
            if yield_func is not None:
                yield_func()

        correct = evaluate(network, scored) if scored else 0
        total = len(scored)
        accuracy = correct / total if total else 0.0
        logger.debug(
            f"Epoch {epoch}/{epochs}: {correct}/{total} correct"
        )

        if callback is not None:
            callback({
                'epoch': epoch,
                'total_epochs': epochs,
                'accuracy': accuracy,
                'correct': correct,
                'total': total,
                'elapsed_time': time.time() - start
            })
