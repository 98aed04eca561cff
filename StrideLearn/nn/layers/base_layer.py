from StrideLearn.core import Tensor
from StrideLearn.core.tensor import outer_length


class BaseLayer:
    """
    Interface shared by differentiable layers.

    A layer is initialized with the per-sample input shape (no mini-batch
    axis), receives its learnable parameters as a list of tensors, computes
    `forward(input, output)` into a caller-supplied output tensor and
    propagates `dout` back with `backward`.
    """

    def __init__(self, trainable: bool = False):
        self.trainable = trainable

        # Shapes
        self.input_shape, self.output_shape = None, None
        self.parameter_shapes = []

    def __call__(self, x: Tensor, out: Tensor = None) -> Tensor:
        if out is None:
            out = Tensor((x.length(0),) + tuple(self.get_output_shape()), dtype=x.dtype)
        self.forward(x, out)
        return out

    def __repr__(self):
        class_name = self.__class__.__name__
        extra = self.extra_repr()
        if extra:
            return f"{class_name}({extra})"
        shape_str = f"in={self.input_shape}, out={self.output_shape}"
        return f"{class_name}({shape_str}, params={self.count_parameters()})"

    def extra_repr(self) -> str:
        """
        Override in subclasses to provide custom layer-specific
        information for __repr__.
        """
        return ""

    def count_parameters(self) -> int:
        """Return the total number of learnable scalars this layer expects."""
        return sum(outer_length(shape) for shape in self.parameter_shapes)

    def is_initialized(self):
        return self.input_shape is not None

    def get_output_shape(self):
        if self.output_shape is None:
            raise RuntimeError(f"{self.__class__.__name__} has not been initialized")
        return self.output_shape

    def get_parameter_shapes(self):
        return list(self.parameter_shapes)

    def get_tensor_type(self):
        return Tensor

    # -------------------------------
    # Abstracts (implemented in child)
    # -------------------------------
    def initialize(self, input_shape):
        raise NotImplementedError

    def set_parameters(self, parameters):
        raise NotImplementedError

    def forward(self, x: Tensor, out: Tensor):
        raise NotImplementedError

    def backward(self, x: Tensor, dout: Tensor, grad_input: Tensor, grad_parameters):
        raise NotImplementedError
