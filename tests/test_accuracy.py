import csv
import json

import pytest

from StrideLearn.core import Tensor
from StrideLearn.utils import Accuracy, tensor_errors, tensors_match, assert_tensor_equals
from StrideLearn.utils.loggers import GradCheckLogger


def test_accuracy_matches_relative_or_absolute():
    tol = Accuracy(1e-3, 1e-6)
    assert tol.matches(1000.0, 1000.5)
    assert tol.matches(0.0, 5e-7)
    assert not tol.matches(1.0, 1.01)


def test_assert_tensor_equals_names_first_bad_index():
    a = Tensor.from_array([[1.0, 2.0], [3.0, 4.0]])
    b = a.copy()
    b.set(4.5, 1, 1)
    assert_tensor_equals(a, a.copy())
    with pytest.raises(AssertionError, match=r"index \(1, 1\)"):
        assert_tensor_equals(a, b)
    with pytest.raises(AssertionError, match="Shape mismatch"):
        assert_tensor_equals(a, Tensor((4,)))


def test_sub_tensor_comparison(factory):
    sub = factory.random((2, 3), sub=True)
    assert tensors_match(sub, sub.copy(), Accuracy.STANDARD)
    assert not tensors_match(sub, Tensor((3, 2)))


def test_tensor_errors():
    a = Tensor.from_array([1.0, 2.0])
    b = Tensor.from_array([1.0, 2.5])
    abs_err, rel_err = tensor_errors(a, b)
    assert abs_err == pytest.approx(0.5)
    assert rel_err == pytest.approx(0.2)
    assert tensor_errors(Tensor((0,)), Tensor((0,))) == (0.0, 0.0)


def test_logger_exports(tmp_path):
    logger = GradCheckLogger()
    logger.add("BatchNorm", "input", (4, 3), 1e-9, 1e-7, True)
    logger.add("BatchNorm", "param_0", (3, 2), 0.5, 1.0, False)
    logger.end_check()

    assert logger.summary() == {"checks": 1, "tensors": 2, "failed": 1,
                                "max_abs_error": 0.5, "max_rel_error": 1.0}
    assert [r["tensor"] for r in logger.failures()] == ["param_0"]

    logger.to_json(tmp_path / "log.json")
    data = json.loads((tmp_path / "log.json").read_text())
    assert data["summary"]["failed"] == 1
    assert data["records"][0]["shape"] == "4x3"

    logger.to_csv(tmp_path / "log.csv")
    with open(tmp_path / "log.csv", newline="") as f:
        rows = list(csv.DictReader(f))
    assert rows[1]["passed"] == "False"


def test_logger_rejects_unknown_format():
    with pytest.raises(ValueError):
        GradCheckLogger(autosave="xml")
