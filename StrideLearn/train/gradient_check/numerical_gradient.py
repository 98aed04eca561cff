import StrideLearn.core.backend.backend as backend
from StrideLearn.core import Tensor
from StrideLearn.core.tensor import prepend_dim, ensure_shape


class NumericalGradient:
    """
    Central difference estimate of a layer's gradients.

    The scalar loss is implied by the upstream gradient: `loss = sum(output * dout)`.
    For every element of the input and of each parameter tensor the element is
    moved by `+step` and `-step`, the full forward pass is re-run and

        grad[i] = (loss_plus - loss_minus) / (2 * step)

    The loss always sums over the whole output because batch statistics tie
    every output element to every input in its column. Nothing about the
    layer is used beyond `set_parameters`, `forward` and `get_output_shape`.

    Args:
        step (float, optional): Finite difference step. Defaults to
            backend.GRAD_CHECK_STEP.
    """
    def __init__(self, step=None):
        if step is None:
            step = backend.GRAD_CHECK_STEP
        if step <= 0:
            raise ValueError("step must be > 0")
        self.step = float(step)
        self.function = None
        self._output = None

    def set_function(self, function):
        """Bind the layer to differentiate. It must already be initialized."""
        self.function = function

    def differentiate(self, x: Tensor, parameters, dout: Tensor, grad_input: Tensor, grad_parameters):
        """
        Estimate d(loss)/d(input) and d(loss)/d(parameters).

        Args:
            x (Tensor): Input mini-batch.
            parameters (list[Tensor]): Parameters handed to the layer.
            dout (Tensor): Upstream gradient, shaped like the output.
            grad_input (Tensor): Receives the input gradient.
            grad_parameters (list[Tensor]): One tensor per parameter, receives
                its gradient.

        Every perturbed element is restored before returning, even when the
        layer raises, and the exception is propagated.
        """
        if self.function is None:
            raise RuntimeError("set_function must be called before differentiate")

        parameters = list(parameters) if parameters is not None else []
        grad_parameters = list(grad_parameters) if grad_parameters is not None else []
        if len(parameters) != len(grad_parameters):
            raise ValueError(
                f"Got {len(parameters)} parameters but {len(grad_parameters)} gradient tensors")

        out_shape = prepend_dim(x.length(0), self.function.get_output_shape())
        ensure_shape(dout, out_shape, name="dout")
        if self._output is None or self._output.shape != out_shape:
            self._output = Tensor(out_shape, dtype=x.dtype)

        grad_input.reshape(x.shape)
        self._differentiate_tensor(x, parameters, dout, target=x, gradient=grad_input)

        for param, grad in zip(parameters, grad_parameters):
            grad.reshape(param.shape)
            self._differentiate_tensor(x, parameters, dout, target=param, gradient=grad)

        # leave the layer bound to the unperturbed parameters and statistics
        self.function.set_parameters(parameters)
        self.function.forward(x, self._output)

    def _loss(self, x, parameters, dout):
        self.function.set_parameters(parameters)
        self.function.forward(x, self._output)
        return float(backend.xp.sum(self._output.flat_view() * dout.flat_view()))

    def _differentiate_tensor(self, x, parameters, dout, target: Tensor, gradient: Tensor):
        h = self.step
        for i in target.indices():
            value = target.get_flat(i)
            try:
                target.set_flat(i, value + h)
                loss_plus = self._loss(x, parameters, dout)
                target.set_flat(i, value - h)
                loss_minus = self._loss(x, parameters, dout)
            finally:
                target.set_flat(i, value)
            gradient.set_flat(i, (loss_plus - loss_minus) / (2 * h))
