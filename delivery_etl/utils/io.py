import copy
import os

import yaml

DEFAULTS = {
    "sources": {},
    "bronze": "data/bronze",
    "silver": "data/silver",
    "gold": "data/gold",
    "duckdb_path": "data/warehouse/logistics.duckdb",
    "outliers": {"iqr_multiplier": 1.5, "min_partition_size": 4},
    "segments": {"unknown_weight_bucket": False},
}

ENV_OVERRIDES = {
    "DELIVERY_ETL_BRONZE": "bronze",
    "DELIVERY_ETL_SILVER": "silver",
    "DELIVERY_ETL_GOLD": "gold",
    "DELIVERY_ETL_DUCKDB_PATH": "duckdb_path",
}


def load_yaml(path: str):
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: str) -> dict:
    """YAML config over DEFAULTS; DELIVERY_ETL_* env vars win over both."""
    cfg = _merge(DEFAULTS, load_yaml(path))
    for env_name, key in ENV_OVERRIDES.items():
        if os.environ.get(env_name):
            cfg[key] = os.environ[env_name]
    return cfg
