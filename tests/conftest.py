"""Shared fixtures for secretspec tests."""
import textwrap
from pathlib import Path
from typing import Dict, Mapping, Optional

import pytest

from secretspec.secrets.domains.errors import ProviderUnavailable
from secretspec.secrets.domains.models import ProviderURI
from secretspec.secrets.providers.base import Provider, ProviderRegistry
from secretspec.secrets.providers.env_provider import EnvProvider


class InMemoryProvider(Provider):
    """Writable provider keyed by project/profile/key; shared store per registry."""

    name = "memory"
    description = "In-memory test store"

    stores: Dict[str, Dict[str, str]] = {}

    def __init__(self, uri: Optional[ProviderURI] = None, environ: Optional[Mapping[str, str]] = None):
        super().__init__(uri, environ)
        bucket = (uri.location if uri else "") or "default"
        self.data = self.stores.setdefault(bucket, {})
        self.calls = []

    def get(self, project, profile, key):
        self.calls.append((project, profile, key))
        return self.data.get(f"{project}/{profile}/{key}")

    def set(self, project, profile, key, value):
        self.data[f"{project}/{profile}/{key}"] = value

    def allows_set(self):
        return True


class BrokenProvider(Provider):
    """Provider whose backend is never reachable."""

    name = "broken"
    description = "Always unavailable"

    def get(self, project, profile, key):
        raise ProviderUnavailable(self.name, "connection refused")

    def set(self, project, profile, key, value):
        raise ProviderUnavailable(self.name, "connection refused")

    def allows_set(self):
        return True


@pytest.fixture(autouse=True)
def clear_memory_stores():
    InMemoryProvider.stores.clear()
    yield
    InMemoryProvider.stores.clear()


@pytest.fixture(autouse=True)
def isolated_user_config(tmp_path, monkeypatch):
    """Point the user config at a temp file and clear selection env vars."""
    config_path = tmp_path / "user-config" / "config.yml"
    monkeypatch.setenv("SECRETSPEC_CONFIG", str(config_path))
    monkeypatch.delenv("SECRETSPEC_PROFILE", raising=False)
    monkeypatch.delenv("SECRETSPEC_PROVIDER", raising=False)
    return config_path


@pytest.fixture
def registry():
    """Registry with in-memory, broken and env providers."""
    registry = ProviderRegistry()
    registry.register(InMemoryProvider)
    registry.register(BrokenProvider)
    registry.register(EnvProvider)
    return registry


@pytest.fixture
def write_toml(tmp_path):
    """Write dedented TOML to a file under tmp_path and return its path."""

    def _write(relative: str, content: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip())
        return path

    return _write


EXAMPLE_DECLARATION = """
    [project]
    name = "example-app"
    revision = "1.0"

    [profiles.default]
    DATABASE_URL = { description = "PostgreSQL connection string", required = true }
    API_KEY = { description = "API key for external service", required = true }
    REDIS_URL = { description = "Redis connection for caching", required = false, default = "redis://localhost:6379" }
    LOG_LEVEL = { description = "Application log level", required = false, default = "info" }

    [profiles.development]
    DATABASE_URL = { description = "PostgreSQL connection string", required = false, default = "sqlite://./dev.db" }
    API_KEY = { description = "API key for external service", required = false, default = "dev-api-key-for-testing" }
    LOG_LEVEL = { default = "debug" }

    [profiles.production]
    REDIS_URL = { required = true }
"""


@pytest.fixture
def example_declaration(write_toml):
    return write_toml("app/secretspec.toml", EXAMPLE_DECLARATION)
