import numpy as np
import pytest

from StrideLearn.core import Tensor, TensorFactory


@pytest.fixture
def factory():
    return TensorFactory(rng=np.random.default_rng(234))


@pytest.fixture
def column():
    """Four samples of a single feature: [1, 2, 3, 4]."""
    return Tensor.from_array([[1.0], [2.0], [3.0], [4.0]])
