"""Exception hierarchy for secretspec.

Every error carries an ``exit_code`` so the CLI can map failure classes to
distinct process exit statuses:

    1 - one or more required secrets missing / unknown secret
    2 - malformed configuration (declaration, user config, provider URI)
    3 - provider unavailable (auth, connectivity, missing CLI)
    4 - provider read-only or write rejected
"""
from typing import Iterable, Optional


class SecretSpecError(Exception):
    """Base class for all secretspec errors."""
    exit_code = 1


# --- Configuration ---


class ConfigError(SecretSpecError):
    """Configuration error exception."""
    exit_code = 2


class ConfigParseError(ConfigError):
    """Malformed declaration or user config text."""


class DeclarationNotFound(ConfigError):
    """No secretspec.toml found at or above the starting directory."""


class CyclicInheritance(ConfigError):
    """An ``extends`` chain refers back to one of its own ancestors."""

    def __init__(self, chain: Iterable[str]):
        self.chain = list(chain)
        super().__init__(
            "Cyclic inheritance detected: " + " -> ".join(self.chain)
        )


class MissingParent(ConfigError):
    """An ``extends`` entry does not point at an existing declaration."""

    def __init__(self, path: str, referenced_by: Optional[str] = None):
        self.path = path
        self.referenced_by = referenced_by
        message = f"Parent declaration not found: {path}"
        if referenced_by:
            message += f" (extended by {referenced_by})"
        super().__init__(message)


class InvalidProviderURI(ConfigError):
    """Provider identifier has an unknown scheme or malformed parameters."""


class DuplicateProvider(ConfigError):
    """Two backends registered under the same scheme."""


# --- Resolution ---


class MissingRequiredSecret(SecretSpecError):
    """One or more required secrets could not be resolved."""
    exit_code = 1

    def __init__(self, keys: Iterable[str], profile: str, provider: str):
        self.keys = sorted(keys)
        self.profile = profile
        self.provider = provider
        super().__init__(
            f"Missing required secrets in profile '{profile}' "
            f"(provider '{provider}'): {', '.join(self.keys)}"
        )


class UnknownSecret(SecretSpecError):
    """Key is not declared in the active profile."""
    exit_code = 1

    def __init__(self, key: str, profile: str):
        self.key = key
        self.profile = profile
        super().__init__(
            f"Secret '{key}' is not declared in profile '{profile}' "
            f"(or the default profile)"
        )


# --- Providers ---


class ProviderError(SecretSpecError):
    """Base class for backend failures."""
    exit_code = 3

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderUnavailable(ProviderError):
    """Backend cannot be reached or is not authenticated."""


class ProviderReadOnly(ProviderError):
    """Write attempted against a backend that does not allow writes."""
    exit_code = 4

    def __init__(self, provider: str, message: Optional[str] = None):
        super().__init__(provider, message or "Provider is read-only")


class ProviderWriteError(ProviderError):
    """Backend rejected a write (permissions, quota, validation)."""
    exit_code = 4


# --- Run ---


class SubprocessFailure(SecretSpecError):
    """Command launched by ``run`` exited non-zero or could not start."""

    def __init__(self, command: Iterable[str], returncode: int, message: Optional[str] = None):
        self.command = list(command)
        self.returncode = returncode
        # A child killed by a signal reports -N; shells exit 128 + N in that case
        self.exit_code = 128 + abs(returncode) if returncode < 0 else returncode
        program = self.command[0] if self.command else ""
        super().__init__(message or f"Command '{program}' exited with status {returncode}")
