import StrideLearn.core.backend.backend as backend
from StrideLearn.nn.layers.base_layer import BaseLayer
from StrideLearn.core import Tensor
from StrideLearn.core.tensor import outer_length, append_dim, prepend_dim, ensure_shape


class BatchNorm(BaseLayer):
    """
    Batch Normalization over the mini-batch axis.

    Every per-sample position `f` is normalized with the mean and the unbiased
    standard deviation of its column across the mini-batch:

        mean[f] = sum_b x[b, f] / N
        std[f]  = sqrt(sum_b (x[b, f] - mean[f])^2 / (N - 1) + eps)
        xhat    = (x - mean) / std

    With `gamma_beta` enabled the output is `gamma[f] * xhat + beta[f]`, where
    gamma and beta are read as interleaved pairs from a single parameter
    tensor of shape `(*input_shape, 2)`. Otherwise the output is xhat.

    Parameters
    ----------
    gamma_beta : bool, optional
        Whether the learnable scale/shift pair is applied. Default is True.
    eps : float, optional
        Added to the variance for numerical stability. Defaults to one tenth
        of backend.TEST_TOL_F64.

    Attributes
    ----------
    mean : Tensor
        Per-sample shaped mean from the last forward pass.
    std : Tensor
        Per-sample shaped sqrt(variance + eps) from the last forward pass.
    xhat : Tensor
        Normalized input, kept for the backward pass when gamma/beta are used.
    params : Tensor
        Internal copy of the interleaved gamma/beta parameters.
    """
    def __init__(self, gamma_beta=True, eps=None):

        if eps is None:
            eps = backend.TEST_TOL_F64 * 0.1

        # Validate eps
        if not isinstance(eps, (float, int)) or isinstance(eps, bool):
            raise ValueError("eps must be a float")
        if eps <= 0:
            raise ValueError("eps must be > 0")

        super().__init__(trainable=bool(gamma_beta))

        self.gamma_beta = bool(gamma_beta)
        self.eps = float(eps)

        self.mean = Tensor((0,))
        self.std = Tensor((0,))
        self.xhat = Tensor((0,))
        self.params = Tensor((0,))

        self._forward_done = False

    def extra_repr(self) -> str:
        return f"gamma_beta={self.gamma_beta}, eps={self.eps}, in={self.input_shape}"

    # -------------------------------
    # Configuration
    # -------------------------------
    def get_eps(self):
        return self.eps

    def set_eps(self, eps):
        if eps <= 0:
            raise ValueError("eps must be > 0")
        self.eps = float(eps)

    def has_gamma_beta(self):
        return self.gamma_beta

    def initialize(self, input_shape):

        # Validate input_shape
        if input_shape is None:
            raise ValueError("input_shape must be provided to initialize the layer")

        input_shape = tuple(int(s) for s in input_shape)

        self.input_shape = input_shape
        self.output_shape = input_shape

        self.mean = Tensor(input_shape)
        self.std = Tensor(input_shape)
        self.xhat = Tensor((0,))

        if self.gamma_beta:
            param_shape = append_dim(input_shape, 2)
            self.parameter_shapes = [param_shape]
            self.params = Tensor(param_shape)
        else:
            self.parameter_shapes = []
            self.params = Tensor((0,))

        self._forward_done = False

    def set_parameters(self, parameters):
        if not self.is_initialized():
            raise RuntimeError("BatchNorm must be initialized before parameters are set")

        parameters = list(parameters) if parameters is not None else []

        if not self.gamma_beta:
            if len(parameters) != 0:
                raise ValueError("There are no parameters since gamma and beta have been turned off")
            return

        if len(parameters) != 1:
            raise ValueError(f"Expected exactly one parameter tensor (gamma/beta), got {len(parameters)}")
        ensure_shape(parameters[0], self.parameter_shapes[0], name="gamma/beta")
        self.params.set_to(parameters[0])

    # -------------------------------
    # Forward
    # -------------------------------
    def forward(self, x: Tensor, out: Tensor):
        """
        Normalize `x` into `out`.

        Args:
            x (Tensor): Input of shape (N, *input_shape) with N > 1.
            out (Tensor): Receives the result; reshaped to the input shape.

        Raises:
            ValueError: If the mini-batch has one sample or fewer, or the
                per-sample shape does not match the initialized shape.
        """
        if not self.is_initialized():
            raise RuntimeError("BatchNorm must be initialized before forward")
        if x.ndim == 0 or x.length(0) <= 1:
            raise ValueError("There must be more than 1 minibatch")

        shape = prepend_dim(x.length(0), self.input_shape)
        ensure_shape(x, shape, name="input")
        out.reshape(shape)

        if self.gamma_beta:
            self.xhat.reshape(shape)
            self._statistics_and_normalize(x, self.xhat)
            self._apply_gamma_beta(self.xhat, out)
        else:
            # output is xhat
            self._statistics_and_normalize(x, out)

        self._forward_done = True

    def _statistics_and_normalize(self, x: Tensor, xhat: Tensor):
        N = x.length(0)
        D = outer_length(x.shape, 1)

        mean = self.mean.flat_view()
        std = self.std.flat_view()
        mean[...] = 0
        std[...] = 0

        # mean
        index = x.start_index
        for _ in range(N):
            mean += x.data[index:index + D]
            index += D
        mean /= N

        # unbiased standard deviation, eps for numerical reasons
        index = x.start_index
        for _ in range(N):
            d = mean - x.data[index:index + D]
            std += d * d
            index += D
        std[...] = backend.xp.sqrt(std / (N - 1) + self.eps)

        # xhat = (x - mean) / std
        index_in = x.start_index
        index_out = xhat.start_index
        for _ in range(N):
            xhat.data[index_out:index_out + D] = (x.data[index_in:index_in + D] - mean) / std
            index_in += D
            index_out += D

    def _gamma_beta_views(self, tensor: Tensor):
        pairs = tensor.flat_view().reshape(-1, 2)
        return pairs[:, 0], pairs[:, 1]

    def _apply_gamma_beta(self, xhat: Tensor, out: Tensor):
        N = xhat.length(0)
        D = outer_length(xhat.shape, 1)
        gamma, beta = self._gamma_beta_views(self.params)

        index_xhat = xhat.start_index
        index_out = out.start_index
        for _ in range(N):
            out.data[index_out:index_out + D] = gamma * xhat.data[index_xhat:index_xhat + D] + beta
            index_xhat += D
            index_out += D

    # -------------------------------
    # Backward
    # -------------------------------
    def backward(self, x: Tensor, dout: Tensor, grad_input: Tensor, grad_parameters):
        """
        Propagate `dout` through gamma/beta and the batch statistics.

        Must follow a forward pass on the same `x`. With g = gamma * dout
        (or dout without gamma/beta):

            dx     = (g - mean_b(g) - xhat * sum_b(g * xhat) / (N - 1)) / std
            dgamma = sum_b dout * xhat
            dbeta  = sum_b dout

        dgamma and dbeta are written interleaved into grad_parameters[0].
        """
        if not self._forward_done:
            raise RuntimeError("forward must be called before backward")

        N = x.length(0)
        shape = prepend_dim(N, self.input_shape)
        ensure_shape(x, shape, name="input")
        ensure_shape(dout, shape, name="dout")
        grad_input.reshape(shape)

        grad_parameters = list(grad_parameters) if grad_parameters is not None else []
        if self.gamma_beta:
            if len(grad_parameters) != 1:
                raise ValueError(f"Expected exactly one parameter gradient tensor, got {len(grad_parameters)}")
            grad_parameters[0].reshape(self.parameter_shapes[0])
        elif len(grad_parameters) != 0:
            raise ValueError("There are no parameters since gamma and beta have been turned off")

        xp = backend.xp
        D = outer_length(shape, 1)
        mean = self.mean.flat_view()
        std = self.std.flat_view()
        if self.gamma_beta:
            gamma, _ = self._gamma_beta_views(self.params)

        def xhat_at(stack):
            if self.gamma_beta:
                i = self.xhat.start_index + stack * D
                return self.xhat.data[i:i + D]
            i = x.start_index + stack * D
            return (x.data[i:i + D] - mean) / std

        sum_g = xp.zeros(D, dtype=std.dtype)
        sum_gx = xp.zeros(D, dtype=std.dtype)
        dgamma = xp.zeros(D, dtype=std.dtype)
        dbeta = xp.zeros(D, dtype=std.dtype)

        index_dout = dout.start_index
        for stack in range(N):
            d = dout.data[index_dout:index_dout + D]
            xh = xhat_at(stack)
            g = gamma * d if self.gamma_beta else d
            sum_g += g
            sum_gx += g * xh
            dgamma += d * xh
            dbeta += d
            index_dout += D

        mean_g = sum_g / N
        scale = sum_gx / (N - 1)

        index_dout = dout.start_index
        index_grad = grad_input.start_index
        for stack in range(N):
            d = dout.data[index_dout:index_dout + D]
            g = gamma * d if self.gamma_beta else d
            grad_input.data[index_grad:index_grad + D] = (g - mean_g - xhat_at(stack) * scale) / std
            index_dout += D
            index_grad += D

        if self.gamma_beta:
            dg, db = self._gamma_beta_views(grad_parameters[0])
            dg[...] = dgamma
            db[...] = dbeta

    # -------------------------------
    # Statistics accessors
    # -------------------------------
    def get_mean(self, out: Tensor = None) -> Tensor:
        """Copy of the mean computed by the last forward pass."""
        if out is None:
            out = self.mean.create_like()
        out.set_to(self.mean)
        return out

    def get_variance(self, out: Tensor = None) -> Tensor:
        """Variance from the last forward pass, i.e. std^2 - eps."""
        if out is None:
            out = self.std.create_like()
        out.reshape(self.std.shape)
        std = self.std.flat_view()
        out.flat_view()[...] = std * std - self.eps
        return out
