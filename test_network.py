import numpy as np
import pytest

from neurocheckers.network import CheckpointError, NeuralNetwork, leaky_relu


def make_net(seed=0, hidden=(8, 4)):
    return NeuralNetwork(6, list(hidden), 1, rng=np.random.RandomState(seed))


def probe(width=6):
    return np.linspace(-1.0, 1.0, width)


def test_shapes_and_initial_biases():
    net = make_net()
    assert [w.shape for w in net.weights] == [(6, 8), (8, 4), (4, 1)]
    assert [b.shape for b in net.biases] == [(8,), (4,), (1,)]
    assert all(np.allclose(b, 0.01) for b in net.biases)
    assert net.topology == (6, (8, 4), 1)
    assert net.num_parameters == 6 * 8 + 8 + 8 * 4 + 4 + 4 + 1


def test_he_scaled_initialisation():
    net = NeuralNetwork(400, [200], 1, rng=np.random.RandomState(1))
    std = net.weights[0].std()
    assert std == pytest.approx(np.sqrt(2.0 / 400), rel=0.1)


def test_seeded_construction_is_reproducible():
    a, b = make_net(5), make_net(5)
    assert all(np.array_equal(x, y) for x, y in zip(a.weights, b.weights))


def test_feed_forward_is_deterministic():
    net = make_net()
    first = net.feed_forward(probe())
    second = net.feed_forward(probe())
    assert first.shape == (1,)
    assert np.array_equal(first, second)


def test_feed_forward_rejects_wrong_width():
    net = make_net()
    with pytest.raises(ValueError):
        net.feed_forward(np.zeros(5))


def test_output_layer_is_linear():
    net = NeuralNetwork(1, [], 1, rng=np.random.RandomState(0))
    net.weights[0][:] = 1.0
    net.biases[0][:] = 0.0
    assert net.feed_forward([-3.0])[0] == pytest.approx(-3.0)


def test_leaky_relu():
    out = leaky_relu(np.array([-2.0, 0.0, 3.0]))
    assert np.allclose(out, [-0.02, 0.0, 3.0])


def test_clone_is_independent():
    net = make_net()
    net.fitness = 12.5
    net.games_played = 4
    copy = net.clone()
    assert copy.fitness == 12.5 and copy.games_played == 4

    copy.mutate(1.0, rng=np.random.RandomState(3))
    assert np.array_equal(net.feed_forward(probe()), make_net().feed_forward(probe()))
    assert not np.array_equal(copy.weights[0], net.weights[0])


def test_mutation_respects_clamps_and_topology():
    net = make_net()
    rng = np.random.RandomState(2)
    for _ in range(50):
        net.mutate(0.5, strength=3.0, rng=rng)
    assert net.topology == (6, (8, 4), 1)
    assert all(np.abs(w).max() <= 5.0 for w in net.weights)
    assert all(np.abs(b).max() <= 2.0 for b in net.biases)


def test_zero_rate_mutation_changes_nothing():
    net = make_net()
    before = [w.copy() for w in net.weights]
    net.mutate(0.0, rng=np.random.RandomState(0))
    assert all(np.array_equal(a, b) for a, b in zip(before, net.weights))


def test_crossover_takes_each_parameter_from_a_parent():
    a, b = make_net(1), make_net(2)
    child = a.crossover(b, rng=np.random.RandomState(4))
    assert child.topology == a.topology
    assert child.fitness == 0.0
    for wc, wa, wb in zip(child.weights, a.weights, b.weights):
        assert np.all((wc == wa) | (wc == wb))
    first = child.weights[0]
    assert np.any(first == a.weights[0]) and np.any(first == b.weights[0])


def test_crossover_rate_extremes():
    a, b = make_net(1), make_net(2)
    all_a = a.crossover(b, rate=1.0, rng=np.random.RandomState(0))
    all_b = a.crossover(b, rate=0.0, rng=np.random.RandomState(0))
    assert all(np.array_equal(x, y) for x, y in zip(all_a.weights, a.weights))
    assert all(np.array_equal(x, y) for x, y in zip(all_b.biases, b.biases))


def test_crossover_rejects_mismatched_topology():
    with pytest.raises(ValueError):
        make_net(hidden=(8, 4)).crossover(make_net(hidden=(4,)))


def test_save_load_round_trip(tmp_path):
    net = make_net(9)
    net.fitness = 123.25
    net.games_played = 17
    path = str(tmp_path / "nested" / "net.bin")
    net.save(path)

    loaded = NeuralNetwork.load(path)
    assert loaded.topology == net.topology
    assert loaded.fitness == 123.25
    assert loaded.games_played == 17
    assert np.allclose(loaded.feed_forward(probe()), net.feed_forward(probe()))


def test_byte_layout_header():
    data = make_net().to_bytes()
    header = np.frombuffer(data, dtype="<i4", count=6)
    assert list(header) == [6, 2, 8, 4, 1, 6]


def test_truncated_checkpoint_is_rejected():
    data = make_net().to_bytes()
    with pytest.raises(CheckpointError):
        NeuralNetwork.from_bytes(data[:-3])
    with pytest.raises(CheckpointError):
        NeuralNetwork.from_bytes(data + b"\x00")


def test_inconsistent_dimensions_are_rejected():
    data = bytearray(make_net().to_bytes())
    # Corrupt the first weight matrix row count
    data[20:24] = np.array([7], dtype="<i4").tobytes()
    with pytest.raises(CheckpointError):
        NeuralNetwork.from_bytes(bytes(data))
