"""Flat ``KEY=value`` file backend.

Dotenv files have no notion of project or profile, so entries are addressed
by key alone. Point different profiles at different files instead, e.g.
``dotenv://.env.production``.
"""
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values, set_key

from ..domains.errors import ProviderUnavailable, ProviderWriteError
from ..domains.models import ProviderURI
from .base import Provider

logger = logging.getLogger(__name__)

DEFAULT_DOTENV_PATH = ".env"


class DotEnvProvider(Provider):
    name = "dotenv"
    description = "Traditional .env files"

    def __init__(self, uri: Optional[ProviderURI] = None, environ: Optional[Mapping[str, str]] = None):
        super().__init__(uri, environ)
        location = uri.location if uri else ""
        self.path = Path(location or DEFAULT_DOTENV_PATH).expanduser()

    def _values(self) -> Dict[str, Optional[str]]:
        if not self.path.exists():
            return {}
        if not self.path.is_file():
            raise ProviderUnavailable(self.name, f"{self.path} is not a file")
        try:
            # Values are stored verbatim; ${VAR} must not be expanded
            return dotenv_values(self.path, interpolate=False)
        except OSError as e:
            raise ProviderUnavailable(self.name, f"Failed to read {self.path}: {e}") from e

    def get(self, project: str, profile: str, key: str) -> Optional[str]:
        return self._values().get(key)

    def set(self, project: str, profile: str, key: str, value: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
            success, _, _ = set_key(self.path, key, value, quote_mode="always")
        except OSError as e:
            raise ProviderWriteError(self.name, f"Failed to write '{key}' to {self.path}: {e}") from e
        if not success:
            raise ProviderWriteError(self.name, f"Failed to write '{key}' to {self.path}")
        logger.debug(f"Stored '{key}' in {self.path}")

    def allows_set(self) -> bool:
        return True
