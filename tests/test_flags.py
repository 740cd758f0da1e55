"""Tests des feature flags (env prioritaire sur settings)."""

import pytest

from backend.config.flags import ff_pinecone_use_namespaces, ff_version_auto_migrate


def test_defaults():
    assert ff_pinecone_use_namespaces() is True
    assert ff_version_auto_migrate() is False


@pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
def test_truthy_values(monkeypatch, value):
    monkeypatch.setenv("FF_VERSION_AUTO_MIGRATE", value)
    assert ff_version_auto_migrate() is True


def test_ff_prefix_wins(monkeypatch):
    monkeypatch.setenv("FF_PINECONE_USE_NAMESPACES", "off")
    monkeypatch.setenv("PINECONE_USE_NAMESPACES", "on")
    assert ff_pinecone_use_namespaces() is False


def test_plain_env_name(monkeypatch):
    monkeypatch.setenv("VERSION_AUTO_MIGRATE", "true")
    assert ff_version_auto_migrate() is True
