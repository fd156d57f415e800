from __future__ import annotations

import pytest
from pydantic import ValidationError

from settings.loader import clear_settings_cache, get_settings, load_settings


def test_missing_file_gives_defaults(tmp_path):
    s = load_settings(tmp_path / "absent.yaml")
    assert s.interval.desktopMs == 200
    assert s.retry.maxRetries == 2
    assert s.endpoint.security == "dev-nonce"


def test_partial_yaml_overrides(tmp_path):
    p = tmp_path / "client.yaml"
    p.write_text("interval:\n  desktopMs: 150\nretry:\n  baseDelayMs: 250\n", encoding="utf-8")
    s = load_settings(p)
    assert s.interval.desktopMs == 150
    assert s.interval.mobileMs == 300
    assert s.retry.baseDelayMs == 250


def test_invalid_root_is_rejected(tmp_path):
    p = tmp_path / "client.yaml"
    p.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(p)


def test_out_of_range_values_are_rejected(tmp_path):
    p = tmp_path / "client.yaml"
    p.write_text("interval:\n  desktopMs: -5\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_settings(p)


def test_env_points_at_another_config(tmp_path, monkeypatch):
    p = tmp_path / "client.yaml"
    p.write_text("endpoint:\n  security: other-nonce\n", encoding="utf-8")
    monkeypatch.setenv("MLD_CLIENT_CONFIG", str(p))
    clear_settings_cache()
    try:
        assert get_settings().endpoint.security == "other-nonce"
    finally:
        monkeypatch.delenv("MLD_CLIENT_CONFIG")
        clear_settings_cache()
    assert get_settings().endpoint.security == "dev-nonce"
