import os
import yaml
from pathlib import Path

DEFAULT_CONFIG_PATH = Path(os.getenv("STRIDE_CONFIG", "stride_config.yaml"))

DEFAULTS = {
    "device": "cpu",
    "dtype": "float64",
    "seed": 997,
    "test_tol": 1e-8,
    "grad_check_step": 1e-5,
    "verbose": False,
}

def load_yaml_config(path: str = None) -> dict:
    """Load configuration from a YAML file."""
    cfg_path = Path(path or os.getenv("STRIDE_CONFIG", DEFAULT_CONFIG_PATH))
    if not cfg_path.exists():
        print(f"[StrideLearn] No config found at {cfg_path}. Using defaults.")
        return {}
    with open(cfg_path, "r") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config file {cfg_path} must contain a mapping, got {type(cfg).__name__}")
    return cfg

def _cast(key, value):
    default = DEFAULTS.get(key)
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value

def parse_env_overrides() -> dict:
    """Collect STRIDE_<KEY> environment overrides (used for runtime config tweaking)."""
    env_config = {}
    for key in DEFAULTS:
        value = os.getenv(f"STRIDE_{key.upper()}")
        if value is not None:
            env_config[key] = _cast(key, value)
    return env_config

def merge_configs(base: dict, override: dict) -> dict:
    """Merge overrides into a base config (override wins)."""
    final = base.copy()
    final.update(override)
    return final

def load_config(path: str = None) -> dict:
    """Main config loader: defaults + YAML + environment overrides."""
    yaml_cfg = {k: _cast(k, v) for k, v in load_yaml_config(path).items()}
    return merge_configs(merge_configs(DEFAULTS, yaml_cfg), parse_env_overrides())

# === The global CONFIG dict you import elsewhere ===
CONFIG = load_config()
