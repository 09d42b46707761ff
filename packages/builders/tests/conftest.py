"""Pytest configuration and fixtures for builders package tests."""

import pytest

from kvknobs_builders import default_adapter_registry

from builder_fakes import FakeConfigBuilder, make_app_settings


@pytest.fixture
def app_settings():
    """Fresh appSettings section with the standard test entries."""
    return make_app_settings()


@pytest.fixture
def adapters():
    """Adapter registry isolated from the process-wide one."""
    return default_adapter_registry()


@pytest.fixture
def make_builder(adapters):
    """Factory that creates and initializes a fake builder."""

    def _make(options=None, builder_cls=FakeConfigBuilder, name="test", **kwargs):
        builder = builder_cls(**kwargs)
        builder.initialize(name, options or {}, adapters=adapters)
        return builder

    return _make


@pytest.fixture
def env_vars(monkeypatch):
    """Helper to set environment variables."""

    def _set_env(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key, str(value))

    return _set_env
