"""Tests for environment-driven settings."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from streaming_server.core.config import Settings


def test_defaults_match_worker_runtime(monkeypatch):
    monkeypatch.delenv("MAX_CONCURRENT_STREAMS", raising=False)
    monkeypatch.delenv("NUMBER_OF_CONCURRENT_STREAMINGS", raising=False)

    settings = Settings(_env_file=None)

    assert settings.port == 4500
    assert settings.worker_image == "bbb-stream:v1.0"
    assert settings.worker_name_prefix == "bbb-stream-"
    assert settings.docker_socket_path == "/var/run/docker.sock"
    assert settings.remove_on_start_failure is False


def test_capacity_reads_legacy_variable(monkeypatch):
    monkeypatch.delenv("MAX_CONCURRENT_STREAMS", raising=False)
    monkeypatch.setenv("NUMBER_OF_CONCURRENT_STREAMINGS", "7")

    assert Settings(_env_file=None).max_concurrent_streams == 7


def test_capacity_reads_new_variable(monkeypatch):
    monkeypatch.delenv("NUMBER_OF_CONCURRENT_STREAMINGS", raising=False)
    monkeypatch.setenv("MAX_CONCURRENT_STREAMS", "3")

    assert Settings(_env_file=None).max_concurrent_streams == 3


def test_negative_capacity_is_rejected(monkeypatch):
    monkeypatch.setenv("MAX_CONCURRENT_STREAMS", "-1")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_cors_origins_accept_comma_separated_values(monkeypatch):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example")

    assert Settings(_env_file=None).cors_allow_origins == ["https://a.example", "https://b.example"]


def test_checksum_algorithm_is_validated():
    assert Settings(_env_file=None, bbb_checksum_algorithm="SHA256").bbb_checksum_algorithm == "sha256"

    with pytest.raises(ValidationError):
        Settings(_env_file=None, bbb_checksum_algorithm="md5")


def test_settings_only_declare_used_fields():
    assert "app_env" not in Settings.model_fields
