from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

import yaml

from settings.types import ClientSettings

logger = logging.getLogger(__name__)


def _repo_root() -> Path:
    # .../backend/settings/loader.py -> repo root is 2 levels up
    return Path(__file__).resolve().parents[2]


def settings_path() -> Path:
    return Path(
        os.getenv("MLD_CLIENT_CONFIG") or (_repo_root() / "config" / "client.yaml")
    )


def _load_yaml(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid client config yaml root: {path}")
    return data


def load_settings(path: Path | None = None) -> ClientSettings:
    p = path or settings_path()
    if not p.exists():
        logger.debug("No client config at %s, using defaults", p)
        return ClientSettings()
    return ClientSettings.model_validate(_load_yaml(p))


@lru_cache(maxsize=1)
def get_settings() -> ClientSettings:
    return load_settings()


def clear_settings_cache() -> None:
    """
    Drop the cached settings so the next `get_settings()` re-reads the YAML file.
    """
    get_settings.cache_clear()
