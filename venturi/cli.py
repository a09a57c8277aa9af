"""
cli.py
~~~~~~

Command line driver: train a network on a CSV file of labelled digits and
query a saved network with another CSV file.

Usage:
    venturi train --training-data mnist_train.csv --output net.bin
    venturi query --network-file net.bin --input-file mnist_test.csv
"""

import logging

import click
import numpy as np

from venturi import __version__, codec
from venturi.activations import Activation
from venturi.dataset import iter_records, load_records, render_ascii
from venturi.errors import VenturiError
from venturi.network import Network, DEFAULT_LEARNING_RATE
from venturi.training import train_samples

logger = logging.getLogger('venturi.cli')

INPUT_NODES = 784
OUTPUT_NODES = 10
DEFAULT_HIDDEN_NODES = 100


@click.group()
@click.version_option(__version__, prog_name='venturi')
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging.')
def cli(verbose: bool) -> None:
    """Venturi neural network."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )


@cli.command()
@click.option('-t', '--training-data', required=True,
              type=click.Path(exists=True, dir_okay=False),
              help='CSV file of label,pixel... records.')
@click.option('-o', '--output', type=click.Path(dir_okay=False),
              help='Write the trained network to this file.')
@click.option('-s', '--show-training', is_flag=True,
              help='Draw every training digit as ASCII art.')
@click.option('--hidden-nodes', default=DEFAULT_HIDDEN_NODES, show_default=True,
              type=click.IntRange(min=1), help='Number of hidden nodes.')
@click.option('--learning-rate', default=DEFAULT_LEARNING_RATE, show_default=True,
              type=float, help='Gradient step size.')
@click.option('--epochs', default=1, show_default=True,
              type=click.IntRange(min=1), help='Passes over the training data.')
def train(training_data, output, show_training, hidden_nodes, learning_rate, epochs):
    """Train a new 784-input, 10-output network."""
    click.echo(f"Training network with {training_data}")

    try:
        network = Network(
            INPUT_NODES, hidden_nodes, OUTPUT_NODES,
            learning_rate, Activation.SIGMOID
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    def show(sample):
        click.echo(render_ascii(sample.inputs))
        click.echo("\n--------------------------------\n")

    try:
        samples = load_records(training_data)
        train_samples(
            network, samples, epochs,
            test_samples=[],
            on_sample=show if show_training else None
        )
    except (VenturiError, ValueError) as e:
        raise click.ClickException(f"Training failed: {e}") from e

    count = len(samples) * epochs
    logger.info(f"Trained on {count} record(s)")
    click.echo(f"Trained on {count} record(s)")

    if output:
        try:
            size = codec.save_network_file(network, output)
        except OSError as e:
            raise click.ClickException(f"Unable to write {output}: {e}") from e
        click.echo(f"Saved network to {output} ({size} bytes)")


@cli.command()
@click.option('-n', '--network-file', required=True,
              type=click.Path(exists=True, dir_okay=False),
              help='Network written by the train command.')
@click.option('-i', '--input-file', required=True,
              type=click.Path(exists=True, dir_okay=False),
              help='CSV file of label,pixel... records.')
def query(network_file, input_file):
    """Query a saved network with each record of a CSV file."""
    try:
        network = codec.load_network_file(network_file, Activation.SIGMOID)
    except VenturiError as e:
        raise click.ClickException(f"Unable to load {network_file}: {e}") from e

    try:
        records = iter_records(input_file)
        for sample in records:
            click.echo(f"Label: {sample.label}")
            try:
                result = network.query(sample.inputs)
            except VenturiError as e:
                click.echo(f"Unable to query network: {e}")
                continue
            click.echo(f"Predicted: {int(np.argmax(result))}")
            click.echo(f"Result:\n{np.array2string(result.ravel(), precision=4)}")
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def main() -> None:
    cli()


if __name__ == '__main__':
    main()
