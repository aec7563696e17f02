"""Read-only backend over the process environment."""
from typing import Mapping, Optional

from ..domains.models import ProviderURI
from .base import Provider


class EnvProvider(Provider):
    """Reads secrets from a snapshot of the environment taken at construction."""

    name = "env"
    description = "Read-only environment variables"

    def __init__(self, uri: Optional[ProviderURI] = None, environ: Optional[Mapping[str, str]] = None):
        super().__init__(uri, environ)
        self._snapshot = dict(self.environ)

    def get(self, project: str, profile: str, key: str) -> Optional[str]:
        return self._snapshot.get(key)
