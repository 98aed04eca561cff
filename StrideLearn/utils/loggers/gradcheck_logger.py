import os
import csv
import json


class GradCheckLogger:
    """
    Records the outcome of gradient checks, one row per compared tensor.

    Each record holds the layer name, the tensor name ("input" or
    "param_<i>"), its shape, the maximum absolute and relative error between
    the numerical and analytic gradients, and whether the tensor passed.
    Records can be saved to JSON or CSV, automatically after each check when
    `autosave` is set.

    Attributes:
        records (list[dict]): Logged comparisons in insertion order.
        autosave (str or None): Format for autosaving logs ("json" or "csv").
        save_path (str): Directory path for saving logs.
        checks (int): Number of completed gradient checks.
    """
    def __init__(self, autosave=None, save_path="gradcheck_logs"):
        if autosave not in (None, "json", "csv"):
            raise ValueError("autosave must be None, 'json' or 'csv'")
        self.records = []
        self.checks = 0

        self.autosave = autosave
        self.save_path = save_path
        if autosave:
            os.makedirs(save_path, exist_ok=True)

    # -------------------------------
    # Logging
    # -------------------------------
    def add(self, layer_name, tensor_name, shape, max_abs_error, max_rel_error, passed):
        """Record the comparison of one gradient tensor."""
        self.records.append({
            "check": self.checks,
            "layer": layer_name,
            "tensor": tensor_name,
            "shape": "x".join(str(s) for s in shape),
            "max_abs_error": float(max_abs_error),
            "max_rel_error": float(max_rel_error),
            "passed": bool(passed),
        })

    def end_check(self):
        """Mark the end of one gradient check run."""
        self.checks += 1
        self._autosave()

    def failures(self):
        return [r for r in self.records if not r["passed"]]

    def summary(self):
        """Aggregate view of all records."""
        if not self.records:
            return {"checks": self.checks, "tensors": 0, "failed": 0,
                    "max_abs_error": 0.0, "max_rel_error": 0.0}
        return {
            "checks": self.checks,
            "tensors": len(self.records),
            "failed": len(self.failures()),
            "max_abs_error": max(r["max_abs_error"] for r in self.records),
            "max_rel_error": max(r["max_rel_error"] for r in self.records),
        }

    # -------------------------------
    # Export
    # -------------------------------
    def to_json(self, filepath):
        """Save all records and the summary to a JSON file."""
        with open(filepath, "w") as f:
            json.dump({"summary": self.summary(), "records": self.records}, f, indent=4)

    def to_csv(self, filepath):
        """Save records to CSV."""
        keys = ["check", "layer", "tensor", "shape", "max_abs_error", "max_rel_error", "passed"]
        with open(filepath, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=keys)
            writer.writeheader()
            writer.writerows(self.records)

    def _autosave(self):
        if self.autosave == "json":
            self.to_json(os.path.join(self.save_path, "gradcheck_logs.json"))
        elif self.autosave == "csv":
            self.to_csv(os.path.join(self.save_path, "gradcheck_logs.csv"))
