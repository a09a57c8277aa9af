"""
test_dataset.py
~~~~~~~~~~~~~~~

Unit tests for CSV record parsing and the training loop helpers.
"""

import numpy as np
import pytest

from venturi.activations import Activation
from venturi.dataset import (
    Sample,
    iter_records,
    load_records,
    normalize_pixels,
    one_hot,
    parse_record,
    render_ascii
)
from venturi.network import Network
from venturi.training import evaluate, predict, train_samples


@pytest.mark.unit
class TestRecords:
    """Tests for parsing and normalizing records."""

    def test_normalize_range(self):
        values = normalize_pixels([0, 255, 127.5])
        assert values.dtype == np.float32
        assert values[0] == pytest.approx(0.01)
        assert values[1] == pytest.approx(1.0)
        assert values[2] == pytest.approx(0.505)

    def test_one_hot(self):
        targets = one_hot(3)
        assert targets.shape == (10,)
        assert targets[3] == pytest.approx(0.99)
        assert np.allclose(np.delete(targets, 3), 0.01)

    @pytest.mark.parametrize('label', [-1, 10])
    def test_one_hot_out_of_range(self, label):
        with pytest.raises(ValueError):
            one_hot(label)

    def test_parse_label_first(self):
        sample = parse_record('7,0,255,0\n')
        assert sample.label == 7
        assert np.allclose(sample.inputs, [0.01, 1.0, 0.01])

    def test_parse_label_last_without_normalizing(self):
        sample = parse_record('7.4,0.3,9.1,5', label_last=True, normalize=False)
        assert sample.label == 5
        assert np.allclose(sample.inputs, [7.4, 0.3, 9.1])

    @pytest.mark.parametrize('line', ['', '5', 'x,1,2', '1,2,abc'])
    def test_parse_malformed(self, line):
        with pytest.raises(ValueError):
            parse_record(line)

    def test_iter_records_skips_blank_lines(self, tmp_path, make_record):
        path = tmp_path / 'data.csv'
        path.write_text(
            make_record(1, [0, 10]) + '\n\n' + make_record(2, [20, 30]) + '\n'
        )
        samples = list(iter_records(path))
        assert [s.label for s in samples] == [1, 2]
        assert load_records(path)[1].label == 2

    def test_iter_records_reports_line_number(self, tmp_path):
        path = tmp_path / 'data.csv'
        path.write_text('1,0,0\n2,zero,0\n')
        with pytest.raises(ValueError) as exc_info:
            list(iter_records(path))
        assert ':2:' in str(exc_info.value)

    def test_render_ascii(self):
        pixels = [0.9, 0.5, 0.01, 0.01, 0.7, 0.2]
        assert render_ascii(pixels, width=3) == '*. \n *.'

    def test_render_ascii_bad_width(self):
        with pytest.raises(ValueError):
            render_ascii([0.1] * 5, width=3)


@pytest.mark.unit
class TestTraining:
    """Tests for the epoch loop and accuracy count."""

    @pytest.fixture
    def samples(self):
        return [
            Sample(0, np.array([0.99, 0.01], dtype=np.float32)),
            Sample(1, np.array([0.01, 0.99], dtype=np.float32)),
        ]

    def test_learns_separable_samples(self, samples):
        net = Network(2, 4, 2, 0.3, Activation.SIGMOID, rng=np.random.default_rng(2))
        train_samples(net, samples, epochs=300)
        assert evaluate(net, samples) == 2
        assert predict(net, samples[1].inputs) == 1

    def test_callback_per_epoch(self, samples):
        net = Network(2, 3, 2)
        progress = []
        calls = []

        train_samples(
            net, samples, epochs=3,
            callback=progress.append,
            yield_func=lambda: calls.append(1)
        )

        assert [p['epoch'] for p in progress] == [1, 2, 3]
        assert all(p['total_epochs'] == 3 for p in progress)
        assert all(p['total'] == 2 for p in progress)
        assert all(0.0 <= p['accuracy'] <= 1.0 for p in progress)
        assert len(calls) == 6

    def test_on_sample_sees_every_sample_in_order(self, samples):
        seen = []
        progress = []

        train_samples(
            Network(2, 3, 2), samples, epochs=2,
            test_samples=[],
            callback=progress.append,
            on_sample=lambda sample: seen.append(sample.label)
        )

        assert seen == [0, 1, 0, 1]
        assert all(p['total'] == 0 and p['accuracy'] == 0.0 for p in progress)

    def test_rejects_zero_epochs(self, samples):
        with pytest.raises(ValueError):
            train_samples(Network(2, 3, 2), samples, epochs=0)

    def test_label_outside_outputs(self):
        net = Network(2, 3, 2)
        with pytest.raises(ValueError):
            train_samples(net, [Sample(5, np.array([0.5, 0.5]))])
