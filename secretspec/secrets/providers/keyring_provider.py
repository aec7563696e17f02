"""System credential store backend (macOS Keychain, Secret Service, Windows Credential Locker)."""
import logging
from typing import Mapping, Optional

import keyring
from keyring.errors import KeyringError, PasswordSetError

from ..domains.errors import ProviderUnavailable, ProviderWriteError
from ..domains.models import ProviderURI
from .base import Provider

logger = logging.getLogger(__name__)

SERVICE_PREFIX = "secretspec"


class KeyringProvider(Provider):
    """Stores each secret as a keyring entry with service ``secretspec/{project}/{profile}``."""

    name = "keyring"
    description = "Uses the system keychain for secure storage"

    def __init__(self, uri: Optional[ProviderURI] = None, environ: Optional[Mapping[str, str]] = None):
        super().__init__(uri, environ)
        # keyring://custom-prefix changes the service namespace
        self.service_prefix = (uri.location.strip("/") if uri and uri.location else "") or SERVICE_PREFIX

    def _service(self, project: str, profile: str) -> str:
        return f"{self.service_prefix}/{project}/{profile}"

    def get(self, project: str, profile: str, key: str) -> Optional[str]:
        service = self._service(project, profile)
        try:
            return keyring.get_password(service, key)
        except KeyringError as e:
            raise ProviderUnavailable(self.name, f"Failed to read '{key}' from {service}: {e}") from e

    def set(self, project: str, profile: str, key: str, value: str) -> None:
        service = self._service(project, profile)
        try:
            keyring.set_password(service, key, value)
        except PasswordSetError as e:
            raise ProviderWriteError(self.name, f"Keyring rejected write of '{key}' to {service}: {e}") from e
        except KeyringError as e:
            raise ProviderUnavailable(self.name, f"Failed to write '{key}' to {service}: {e}") from e
        logger.debug(f"Stored '{key}' in keyring service {service}")

    def allows_set(self) -> bool:
        return True
