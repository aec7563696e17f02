"""Provider capability interface and scheme registry."""
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from ..domains.errors import DuplicateProvider, InvalidProviderURI, ProviderReadOnly
from ..domains.models import ProviderURI
from ..domains.provider_uri import parse_provider_uri

logger = logging.getLogger(__name__)


class Provider(ABC):
    """
    Storage backend for secret values.

    Implementations address entries by project, profile and key (or the
    closest equivalent the backend supports) so one store can hold many
    projects and profiles.

    get() returns None when a key is simply not stored and raises
    ProviderUnavailable when the backend cannot be consulted at all.
    set() raises ProviderReadOnly for read-only backends and
    ProviderWriteError when the backend rejects the write.
    """

    name: str = ""
    description: str = ""

    def __init__(self, uri: Optional[ProviderURI] = None, environ: Optional[Mapping[str, str]] = None):
        self.uri = uri
        # Environment the backend reads its own settings (tokens, project ids) from
        self.environ = os.environ if environ is None else environ

    @property
    def uri_string(self) -> str:
        return self.uri.raw if self.uri else self.name

    @abstractmethod
    def get(self, project: str, profile: str, key: str) -> Optional[str]:
        """Fetch one secret value, or None if it is not stored."""

    def set(self, project: str, profile: str, key: str, value: str) -> None:
        """Store one secret value."""
        raise ProviderReadOnly(self.name)

    def allows_set(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.uri_string}>"


ProviderFactory = Callable[..., Provider]


@dataclass(frozen=True)
class ProviderEntry:
    """Registered backend: scheme, factory and display metadata."""
    scheme: str
    factory: ProviderFactory
    name: str
    description: str
    examples: Tuple[str, ...] = ()


class ProviderRegistry:
    """Maps provider URI schemes to backend factories."""

    def __init__(self, entries: Tuple[ProviderEntry, ...] = ()):
        self._entries: Dict[str, ProviderEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: ProviderEntry) -> None:
        """
        Register a backend under its scheme.

        Raises:
            DuplicateProvider: If the scheme is already registered
        """
        scheme = entry.scheme.lower()
        if scheme in self._entries:
            raise DuplicateProvider(
                f"Provider scheme '{scheme}' is already registered "
                f"by '{self._entries[scheme].name}'"
            )
        self._entries[scheme] = entry

    def register(self, provider_class: type, schemes: Optional[Tuple[str, ...]] = None,
                 examples: Tuple[str, ...] = ()) -> None:
        """Register a Provider subclass whose constructor takes a ProviderURI and ``environ``."""
        for scheme in schemes or (provider_class.name,):
            self.add(ProviderEntry(
                scheme=scheme,
                factory=provider_class,
                name=provider_class.name,
                description=provider_class.description,
                examples=examples,
            ))

    def schemes(self) -> List[str]:
        return sorted(self._entries)

    def entries(self) -> List[ProviderEntry]:
        return [self._entries[scheme] for scheme in self.schemes()]

    def __contains__(self, scheme: str) -> bool:
        return scheme.lower() in self._entries

    def create(self, uri: Union[str, ProviderURI], environ: Optional[Mapping[str, str]] = None) -> Provider:
        """
        Parse a provider identifier and instantiate its backend.

        Args:
            uri: Provider identifier string or already-parsed ProviderURI
            environ: Environment handed to the backend (defaults to os.environ)

        Returns:
            Provider instance

        Raises:
            InvalidProviderURI: If the scheme is unknown or the backend rejects
                its parameters
        """
        parsed = parse_provider_uri(uri) if isinstance(uri, str) else uri
        entry = self._entries.get(parsed.scheme)
        if entry is None:
            raise InvalidProviderURI(
                f"Unknown provider '{parsed.scheme}' in '{parsed.raw}'. "
                f"Available providers: {', '.join(self.schemes())}"
            )
        provider = entry.factory(parsed, environ=environ)
        logger.debug(f"Created provider {provider!r}")
        return provider
