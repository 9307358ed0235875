"""
Startup determinism: RNG seeding and a stable hash of the effective config.
"""

import hashlib
import json
import os
import random
from typing import Any

import numpy as np
from pydantic import BaseModel

from ..observability.logging import get_logger

logger = get_logger(__name__)

SECRET_FIELDS = frozenset({"api_key"})

CONFIG_SHA256: str = ""


def _reset_config_hash_for_tests():
    """Reset config hash for test isolation."""
    global CONFIG_SHA256
    CONFIG_SHA256 = ""


def seed_everything(seed: int | None = None) -> int:
    """Seed Python and NumPy random generators."""
    if seed is None:
        seed = int(os.getenv("LEX_SEED", "1337"))

    random.seed(seed)
    np.random.seed(seed)
    os.environ["PYTHONHASHSEED"] = str(seed)

    logger.info(f"Seeded all RNGs with seed: {seed}")
    return seed


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _redact(v) for k, v in value.items() if k not in SECRET_FIELDS}
    if isinstance(value, list | tuple):
        return [_redact(v) for v in value]
    if isinstance(value, set | frozenset):
        return sorted(_redact(v) for v in value)
    return value


def canonical_config(config: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """JSON-safe config dict with secrets removed."""
    data = config.model_dump(mode="json") if isinstance(config, BaseModel) else config
    return _redact(data)


def freeze_config_and_hash(config: BaseModel | dict[str, Any]) -> str:
    """
    Hash the configuration with SHA256 over canonical JSON.

    API keys are excluded so the hash can be logged and exposed by the
    health endpoint.
    """
    global CONFIG_SHA256

    blob = json.dumps(
        canonical_config(config), sort_keys=True, separators=(",", ":"), default=str
    ).encode("utf-8")
    CONFIG_SHA256 = hashlib.sha256(blob).hexdigest()
    logger.info(f"CONFIG_SHA256 {CONFIG_SHA256}")
    return CONFIG_SHA256


def get_config_hash() -> str:
    """Get the current config hash."""
    return CONFIG_SHA256


def ensure_deterministic_startup(config: BaseModel | dict[str, Any]) -> tuple[int, str]:
    """Seed RNGs and hash the config; returns ``(seed, config_hash)``."""
    seed = seed_everything()
    config_hash = freeze_config_and_hash(config)

    logger.info("Deterministic startup complete", seed=seed, config_hash=config_hash[:16] + "...")
    return seed, config_hash
