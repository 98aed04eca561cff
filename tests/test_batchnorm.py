import math

import numpy as np
import pytest

import StrideLearn.core.backend.backend as backend
from StrideLearn.core import Tensor
from StrideLearn.nn.layers import BatchNorm


def _params(gamma, beta):
    """Interleave gamma/beta arrays into a (*shape, 2) parameter tensor."""
    gamma = np.asarray(gamma, dtype=np.float64)
    return Tensor.from_array(np.stack([gamma, np.asarray(beta, dtype=np.float64)], axis=-1))


def _run(layer, x):
    out = Tensor((1,))
    layer.forward(x, out)
    return out


def test_default_epsilon_is_tenth_of_test_tolerance():
    layer = BatchNorm()
    assert layer.get_eps() == pytest.approx(backend.TEST_TOL_F64 * 0.1)
    layer.set_eps(1e-3)
    assert layer.get_eps() == 1e-3
    with pytest.raises(ValueError):
        BatchNorm(eps=0)
    with pytest.raises(ValueError):
        layer.set_eps(-1.0)


def test_eps_keyword_and_attribute():
    layer = BatchNorm(gamma_beta=False, eps=1e-3)
    assert layer.eps == layer.get_eps() == 1e-3
    layer.set_eps(2e-3)
    assert layer.eps == 2e-3
    assert "eps=0.002" in repr(layer)


def test_initialize_shapes():
    layer = BatchNorm(gamma_beta=True)
    layer.initialize((3, 4))
    assert layer.get_output_shape() == (3, 4)
    assert layer.get_parameter_shapes() == [(3, 4, 2)]
    assert layer.mean.shape == (3, 4)
    assert layer.std.shape == (3, 4)
    assert layer.count_parameters() == 24
    assert layer.get_tensor_type() is Tensor

    plain = BatchNorm(gamma_beta=False)
    plain.initialize((5,))
    assert plain.get_parameter_shapes() == []
    assert not plain.has_gamma_beta()


def test_reinitialize_reallocates(factory):
    layer = BatchNorm(gamma_beta=True)
    layer.initialize((5,))
    layer.set_parameters([_params(np.ones(5), np.zeros(5))])
    _run(layer, factory.random_minibatch(4, (5,)))

    layer.initialize((3, 4))
    assert layer.mean.shape == (3, 4)
    assert layer.params.shape == (3, 4, 2)
    layer.set_parameters([_params(np.ones((3, 4)), np.zeros((3, 4)))])
    out = _run(layer, factory.random_minibatch(3, (3, 4)))
    assert out.shape == (3, 3, 4)


def test_set_parameters_validation():
    plain = BatchNorm(gamma_beta=False)
    plain.initialize((2,))
    plain.set_parameters([])
    with pytest.raises(ValueError):
        plain.set_parameters([Tensor((2, 2))])

    layer = BatchNorm(gamma_beta=True)
    layer.initialize((2,))
    with pytest.raises(ValueError):
        layer.set_parameters([])
    with pytest.raises(ValueError):
        layer.set_parameters([Tensor((2, 2)), Tensor((2, 2))])
    with pytest.raises(ValueError):
        layer.set_parameters([Tensor((3, 2))])


def test_set_parameters_copies_values():
    layer = BatchNorm(gamma_beta=True)
    layer.initialize((2,))
    p = _params([2.0, 3.0], [0.5, -0.5])
    layer.set_parameters([p])
    p.zero()
    np.testing.assert_array_equal(layer.params.view(), [[2.0, 0.5], [3.0, -0.5]])


def test_known_column(column):
    layer = BatchNorm(gamma_beta=False)
    layer.initialize((1,))
    out = _run(layer, column)

    eps = layer.get_eps()
    var = (2.25 + 0.25 + 0.25 + 2.25) / 3
    std = math.sqrt(var + eps)

    np.testing.assert_allclose(layer.get_mean().view(), [2.5])
    np.testing.assert_allclose(layer.std.view(), [std])
    np.testing.assert_allclose(layer.get_variance().view(), [var], rtol=1e-12)
    expected = (np.array([1.0, 2.0, 3.0, 4.0]) - 2.5) / std
    np.testing.assert_allclose(out.view()[:, 0], expected, rtol=1e-12)
    np.testing.assert_allclose(out.view()[:, 0], [-1.161895, -0.387298, 0.387298, 1.161895], atol=1e-6)


@pytest.mark.parametrize("shape", [(5,), (3, 4)])
def test_output_is_standardized(factory, shape):
    layer = BatchNorm(gamma_beta=False)
    layer.initialize(shape)
    x = factory.random_minibatch(6, shape, low=-3.0, high=5.0)
    out = _run(layer, x).view()

    np.testing.assert_allclose(out.mean(axis=0), np.zeros(shape), atol=1e-12)
    np.testing.assert_allclose(out.var(axis=0, ddof=1), np.ones(shape), atol=1e-6)


def test_variance_inverts_epsilon(factory):
    layer = BatchNorm(gamma_beta=False, eps=1e-3)
    layer.initialize((3, 2))
    _run(layer, factory.random_minibatch(5, (3, 2)))

    variance = layer.get_variance()
    std = layer.std.view()
    np.testing.assert_allclose(variance.view() + 1e-3, std * std, rtol=1e-14)


def test_accessors_fill_supplied_output(factory):
    layer = BatchNorm(gamma_beta=False)
    layer.initialize((4,))
    x = factory.random_minibatch(3, (4,))
    _run(layer, x)

    mean = Tensor((1,))
    assert layer.get_mean(mean) is mean
    np.testing.assert_allclose(mean.view(), x.view().mean(axis=0), rtol=1e-14)

    var = Tensor((1,))
    assert layer.get_variance(var) is var
    np.testing.assert_allclose(var.view(), x.view().var(axis=0, ddof=1), rtol=1e-6)

    # copies, not views
    mean.zero()
    assert np.any(layer.mean.view() != 0)


def test_forward_is_deterministic(factory):
    layer = BatchNorm(gamma_beta=True)
    layer.initialize((3, 4))
    layer.set_parameters([factory.random((3, 4, 2))])
    x = factory.random_minibatch(5, (3, 4))

    first = _run(layer, x).numpy()
    mean, std = layer.mean.numpy(), layer.std.numpy()
    second = _run(layer, x).numpy()

    np.testing.assert_array_equal(first, second)
    np.testing.assert_array_equal(mean, layer.mean.view())
    np.testing.assert_array_equal(std, layer.std.view())


def test_identity_gamma_beta_matches_plain(factory):
    x = factory.random_minibatch(4, (3, 2))

    plain = BatchNorm(gamma_beta=False)
    plain.initialize((3, 2))
    expected = _run(plain, x).numpy()

    layer = BatchNorm(gamma_beta=True)
    layer.initialize((3, 2))
    layer.set_parameters([_params(np.ones((3, 2)), np.zeros((3, 2)))])
    np.testing.assert_array_equal(_run(layer, x).view(), expected)
    np.testing.assert_array_equal(layer.xhat.view(), expected)


def test_gamma_beta_applied_per_feature(column):
    layer = BatchNorm(gamma_beta=True)
    layer.initialize((1,))
    layer.set_parameters([_params([2.0], [10.0])])
    out = _run(layer, column)
    np.testing.assert_allclose(out.view(), 2.0 * layer.xhat.view() + 10.0, rtol=1e-14)


def test_sub_tensors_match_contiguous(factory):
    layer = BatchNorm(gamma_beta=True)
    layer.initialize((3, 4))
    layer.set_parameters([factory.random((3, 4, 2), sub=True)])

    x_sub = factory.random_minibatch(4, (3, 4), sub=True)
    out_sub = factory.random_minibatch(4, (3, 4), sub=True)
    before = out_sub.data.copy()

    layer.forward(x_sub, out_sub)
    expected = _run(layer, x_sub.copy()).numpy()
    np.testing.assert_array_equal(out_sub.view(), expected)

    # nothing outside the sub-tensor region is touched
    lo, hi = out_sub.start_index, out_sub.start_index + out_sub.size
    np.testing.assert_array_equal(out_sub.data[:lo], before[:lo])
    np.testing.assert_array_equal(out_sub.data[hi:], before[hi:])


def test_minibatch_of_two_succeeds(factory):
    layer = BatchNorm(gamma_beta=False)
    layer.initialize((5,))
    out = _run(layer, factory.random_minibatch(2, (5,)))
    assert np.all(np.isfinite(out.view()))


def test_minibatch_of_one_fails(factory):
    layer = BatchNorm(gamma_beta=False)
    layer.initialize((5,))
    with pytest.raises(ValueError):
        _run(layer, factory.random_minibatch(1, (5,)))


def test_input_shape_mismatch_fails(factory):
    layer = BatchNorm(gamma_beta=False)
    layer.initialize((5,))
    with pytest.raises(ValueError):
        _run(layer, factory.random_minibatch(3, (4,)))


def test_call_allocates_output(factory):
    layer = BatchNorm(gamma_beta=False)
    layer.initialize((2,))
    out = layer(factory.random_minibatch(3, (2,)))
    assert out.shape == (3, 2)


def test_backward_requires_forward(factory):
    layer = BatchNorm(gamma_beta=False)
    layer.initialize((2,))
    x = factory.random_minibatch(3, (2,))
    with pytest.raises(RuntimeError):
        layer.backward(x, x.copy(), x.create_like(), [])


def test_backward_parameter_gradients(factory):
    layer = BatchNorm(gamma_beta=True)
    layer.initialize((3,))
    layer.set_parameters([factory.random((3, 2))])
    x = factory.random_minibatch(4, (3,))
    dout = factory.random_minibatch(4, (3,))
    _run(layer, x)

    grad_x = x.create_like()
    grad_p = Tensor((3, 2))
    layer.backward(x, dout, grad_x, [grad_p])

    xhat = layer.xhat.view()
    np.testing.assert_allclose(grad_p.view()[:, 0], (dout.view() * xhat).sum(axis=0), rtol=1e-12)
    np.testing.assert_allclose(grad_p.view()[:, 1], dout.view().sum(axis=0), rtol=1e-12)
    # gradient of a normalized column sums to zero
    np.testing.assert_allclose(grad_x.view().sum(axis=0), np.zeros(3), atol=1e-9)


def test_repr():
    layer = BatchNorm(gamma_beta=False)
    layer.initialize((2,))
    assert repr(layer).startswith("BatchNorm(gamma_beta=False")
