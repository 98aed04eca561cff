import StrideLearn.core.backend.backend as backend
from StrideLearn.core import Tensor
from StrideLearn.core.tensor import prepend_dim
from StrideLearn.train.gradient_check.numerical_gradient import NumericalGradient
from StrideLearn.utils.accuracy import Accuracy, tensor_errors, tensors_match


def gradient_check(layer, x, parameters, dout, tolerance=Accuracy.RELAXED_A, step=None,
                   logger=None, verbose=None):
    """
    Gradient checker for StrideLearn layers.

    Args:
        layer: Initialized layer exposing set_parameters(), forward() and backward().
        x: Input mini-batch tensor.
        parameters: List of parameter tensors for the layer.
        dout: Upstream gradient, shaped like the layer output.
        tolerance: Accuracy used to compare numerical and analytic gradients.
        step: Finite difference step (defaults to backend.GRAD_CHECK_STEP).
        logger: Optional GradCheckLogger receiving one record per tensor.
        verbose: Print per-tensor errors. Defaults to backend.VERBOSE.

    Returns:
        True if every gradient tensor matches, False otherwise
    """
    if verbose is None:
        verbose = backend.VERBOSE
    parameters = list(parameters) if parameters is not None else []

    # Numerical gradients are the ground truth
    numeric = NumericalGradient(step)
    numeric.set_function(layer)
    expected_x = x.create_like()
    expected_p = [p.create_like() for p in parameters]
    numeric.differentiate(x, parameters, dout, expected_x, expected_p)

    # Forward first, backward relies on its cache
    layer.set_parameters(parameters)
    out = Tensor(prepend_dim(x.length(0), layer.get_output_shape()), dtype=x.dtype)
    layer.forward(x, out)

    found_x = x.create_like()
    found_p = [p.create_like() for p in parameters]
    layer.backward(x, dout, found_x, found_p)

    comparisons = [("input", expected_x, found_x)]
    comparisons += [(f"param_{i}", e, f) for i, (e, f) in enumerate(zip(expected_p, found_p))]

    passed = True
    for name, expected, found in comparisons:
        ok = tensors_match(expected, found, tolerance)
        abs_err, rel_err = tensor_errors(expected, found)
        if verbose:
            print(f"[{layer.__class__.__name__}.{name}{expected.shape}] "
                  f"abs_err={abs_err:.3e}, rel_err={rel_err:.3e}, {'ok' if ok else 'MISMATCH'}")
        if logger is not None:
            logger.add(layer.__class__.__name__, name, expected.shape, abs_err, rel_err, ok)
        passed = passed and ok

    if logger is not None:
        logger.end_check()

    if verbose:
        print("✅ All gradients check out!" if passed else "❌ Gradient check FAILED!")
    return passed
