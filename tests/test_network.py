"""
test_network.py
~~~~~~~~~~~~~~~

Unit tests for Network construction, inference and training.
"""

import numpy as np
import pytest

from venturi.activations import Activation
from venturi.errors import ConfigurationError, ShapeMismatchError
from venturi.network import Network, DEFAULT_LEARNING_RATE

SEED_WEIGHTS = [[0.9, 0.3, 0.4], [0.2, 0.8, 0.2], [0.1, 0.5, 0.6]]
SEED_INPUTS = [0.9, 0.1, 0.8]


def copy_weights(network):
    return [w.copy() for w in network.weights]


def assert_weights_unchanged(network, before):
    for original, current in zip(before, network.weights):
        assert np.array_equal(original, current)


@pytest.mark.unit
class TestConstruction:
    """Tests for building networks."""

    def test_weight_shapes(self):
        net = Network(4, 5, 3, 0.3, Activation.SIGMOID)
        weights_ih, weights_ho = net.weights
        assert weights_ih.shape == (5, 4)
        assert weights_ho.shape == (3, 5)
        assert net.sizes == [4, 5, 3]

    def test_weights_within_half_open_range(self, rng):
        net = Network(50, 40, 30, rng=rng)
        for w in net.weights:
            assert w.dtype == np.float32
            assert np.all(w >= -0.5)
            assert np.all(w < 0.5)

    def test_same_seed_same_weights(self):
        a = Network(3, 4, 2, rng=np.random.default_rng(7))
        b = Network(3, 4, 2, rng=np.random.default_rng(7))
        for wa, wb in zip(a.weights, b.weights):
            assert np.array_equal(wa, wb)

    def test_defaults(self):
        net = Network(2, 2, 2)
        assert net.activation is Activation.SIGMOID
        assert net.learning_rate == pytest.approx(DEFAULT_LEARNING_RATE)

    def test_activation_by_name(self):
        net = Network(2, 2, 2, 0.1, 'tanh')
        assert net.activation is Activation.TANH

    @pytest.mark.parametrize('sizes', [(0, 3, 3), (3, -1, 3), (3, 3, 0)])
    def test_rejects_non_positive_node_counts(self, sizes):
        with pytest.raises(ValueError):
            Network(*sizes)

    def test_rejects_non_integer_node_counts(self):
        with pytest.raises(ValueError):
            Network(3.5, 3, 3)

    @pytest.mark.parametrize('learning_rate', [
        0, -0.1, float('nan'), float('inf'),
        1e-46, 1e39, True, '0.3',
    ])
    def test_rejects_bad_learning_rate(self, learning_rate):
        with pytest.raises(ValueError):
            Network(3, 3, 3, learning_rate)

    def test_smallest_float32_learning_rate_survives_encoding(self):
        rate = float(np.float32(1e-45))
        network = Network(3, 3, 3, rate)
        assert network.learning_rate == rate
        assert Network.from_bytes(network.to_bytes()).learning_rate == rate

    def test_rejects_callable_activation(self):
        with pytest.raises(TypeError):
            Network(3, 3, 3, 0.3, lambda x: x)

    def test_default_network_is_unconfigured(self):
        net = Network.default()
        assert net.sizes == [0, 0, 0]
        assert net.activation is None
        assert net.learning_rate == pytest.approx(0.3)
        assert net.weights[0].shape == (0, 0)
        assert net.weights[1].shape == (0, 0)

    def test_from_weights_derives_sizes(self):
        net = Network.from_weights(np.zeros((4, 2)), np.zeros((3, 4)), 0.2)
        assert net.sizes == [2, 4, 3]
        assert net.activation is None

    def test_from_weights_rejects_disagreeing_hidden_size(self):
        with pytest.raises(ShapeMismatchError):
            Network.from_weights(np.zeros((4, 2)), np.zeros((3, 5)))


@pytest.mark.unit
class TestWeights:
    """Tests for weight access and bulk replacement."""

    def test_weights_are_read_only(self, small_network):
        with pytest.raises(ValueError):
            small_network.weights[0][0, 0] = 1.0

    def test_set_weights(self, small_network):
        small_network.set_weights(SEED_WEIGHTS, 0)
        assert np.allclose(small_network.weights[0], SEED_WEIGHTS)

    def test_set_weights_copies_input(self, small_network):
        weights = np.array(SEED_WEIGHTS)
        small_network.set_weights(weights, 1)
        weights[0, 0] = 42.0
        assert small_network.weights[1][0, 0] == pytest.approx(0.9)

    def test_set_weights_wrong_shape(self):
        net = Network(3, 4, 2)
        with pytest.raises(ShapeMismatchError) as exc_info:
            net.set_weights(np.zeros((3, 4)), 0)
        assert exc_info.value.expected == (4, 3)
        assert exc_info.value.actual == (3, 4)

    def test_set_weights_unknown_layer(self, small_network):
        with pytest.raises(ValueError):
            small_network.set_weights(SEED_WEIGHTS, 2)

    def test_set_weights_rejects_bool_layer(self, small_network):
        before = copy_weights(small_network)
        with pytest.raises(ValueError):
            small_network.set_weights(SEED_WEIGHTS, True)
        assert_weights_unchanged(small_network, before)


@pytest.mark.unit
class TestQuery:
    """Tests for the forward pass."""

    def test_query_hidden_seed_values(self):
        net = Network(3, 3, 3, 0.3, Activation.SIGMOID)
        net.set_weights(SEED_WEIGHTS, 0)
        hidden = net.query_hidden(SEED_INPUTS)
        assert hidden.shape == (3, 1)
        assert int(hidden[0, 0] * 1000.0) == 761
        assert int(hidden[1, 0] * 1000.0) == 603
        assert int(hidden[2, 0] * 1000.0) == 650

    def test_query_matches_manual_forward_pass(self, small_network):
        weights_ih, weights_ho = small_network.weights
        x = np.array(SEED_INPUTS, dtype=np.float32).reshape(3, 1)
        hidden = 1.0 / (1.0 + np.exp(-weights_ih @ x))
        expected = 1.0 / (1.0 + np.exp(-weights_ho @ hidden))
        assert np.allclose(small_network.query(SEED_INPUTS), expected)

    def test_query_output_shape(self):
        net = Network(4, 6, 2)
        assert net.query([0.1, 0.2, 0.3, 0.4]).shape == (2, 1)

    def test_query_accepts_column_vector(self, small_network):
        column = np.array(SEED_INPUTS).reshape(3, 1)
        assert np.allclose(
            small_network.query(column), small_network.query(SEED_INPUTS)
        )

    def test_query_is_pure(self, small_network):
        before = copy_weights(small_network)
        first = small_network.query(SEED_INPUTS)
        second = small_network.query(SEED_INPUTS)
        assert np.array_equal(first, second)
        assert_weights_unchanged(small_network, before)

    @pytest.mark.parametrize('inputs', [[0.1, 0.2], [0.1, 0.2, 0.3, 0.4], []])
    def test_wrong_input_length(self, small_network, inputs):
        with pytest.raises(ShapeMismatchError):
            small_network.query(inputs)
        with pytest.raises(ShapeMismatchError):
            small_network.query_hidden(inputs)

    def test_tanh_outputs_in_range(self, rng):
        net = Network(3, 5, 2, 0.1, Activation.TANH, rng=rng)
        output = net.query([-1.0, 0.5, 2.0])
        assert np.all(output > -1.0)
        assert np.all(output < 1.0)


@pytest.mark.unit
class TestMissingActivation:
    """Operations on a network without an activation must fail cleanly."""

    def test_default_network_fails_all_operations(self):
        net = Network.default()
        with pytest.raises(ConfigurationError):
            net.query([])
        with pytest.raises(ConfigurationError):
            net.query_hidden([])
        with pytest.raises(ConfigurationError):
            net.train([], [])

    def test_detached_activation_leaves_weights_unmodified(self, small_network):
        small_network.set_activation(None)
        before = copy_weights(small_network)

        with pytest.raises(ConfigurationError):
            small_network.train(SEED_INPUTS, [0.01, 0.99, 0.01])

        assert_weights_unchanged(small_network, before)

    def test_reattach_activation(self):
        net = Network.default()
        net.set_activation('sigmoid')
        assert net.activation is Activation.SIGMOID


@pytest.mark.unit
class TestTrain:
    """Tests for a single backpropagation step and repeated training."""

    def test_matches_documented_update(self, small_network):
        targets = np.array([0.01, 0.99, 0.01], dtype=np.float32).reshape(3, 1)
        x = np.array(SEED_INPUTS, dtype=np.float32).reshape(3, 1)
        weights_ih, weights_ho = copy_weights(small_network)
        lr = small_network.learning_rate

        hidden = 1.0 / (1.0 + np.exp(-weights_ih @ x))
        outputs = 1.0 / (1.0 + np.exp(-weights_ho @ hidden))
        errors_output = targets - outputs
        errors_hidden = weights_ho.T @ errors_output
        expected_ho = weights_ho + lr * (errors_output * outputs * (1 - outputs)) @ hidden.T
        expected_ih = weights_ih + lr * (errors_hidden * hidden * (1 - hidden)) @ x.T

        small_network.train(SEED_INPUTS, targets.ravel())

        assert np.allclose(small_network.weights[0], expected_ih, atol=1e-6)
        assert np.allclose(small_network.weights[1], expected_ho, atol=1e-6)

    def test_weights_stay_float32(self, small_network):
        small_network.train(SEED_INPUTS, [0.01, 0.99, 0.01])
        assert all(w.dtype == np.float32 for w in small_network.weights)

    def test_wrong_target_length_leaves_weights_unmodified(self, small_network):
        before = copy_weights(small_network)
        with pytest.raises(ShapeMismatchError):
            small_network.train(SEED_INPUTS, [0.5, 0.5])
        assert_weights_unchanged(small_network, before)

    def test_error_decreases_monotonically(self):
        net = Network(3, 3, 1, 0.1, Activation.SIGMOID, rng=np.random.default_rng(3))
        target = [0.9]

        errors = []
        for _ in range(50):
            errors.append(abs(target[0] - float(net.query(SEED_INPUTS)[0, 0])))
            net.train(SEED_INPUTS, target)

        assert all(later < earlier for earlier, later in zip(errors, errors[1:]))

    def test_training_reduces_error_for_several_outputs(self, small_network):
        targets = np.array([0.01, 0.99, 0.01], dtype=np.float32)

        def error():
            return float(np.abs(targets - small_network.query(SEED_INPUTS).ravel()).sum())

        initial = error()
        for _ in range(200):
            small_network.train(SEED_INPUTS, targets)
        assert error() < initial / 2

    def test_tanh_training_uses_tanh_gradient(self):
        net = Network(3, 4, 1, 0.05, Activation.TANH, rng=np.random.default_rng(11))
        target = [0.5]

        initial = abs(target[0] - float(net.query(SEED_INPUTS)[0, 0]))
        for _ in range(100):
            net.train(SEED_INPUTS, target)
        final = abs(target[0] - float(net.query(SEED_INPUTS)[0, 0]))

        assert final < initial
