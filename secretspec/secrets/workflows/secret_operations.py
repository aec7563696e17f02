"""Workflow for secret operations: check, get, set, run, import and init."""
import os
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from dotenv import dotenv_values

from ..domains.config_loader import load_user_config
from ..domains.declaration import (
    DECLARATION_FILENAME,
    SECRET_NAME_PATTERN,
    find_declaration,
    load_declaration,
    render_declaration,
)
from ..domains.errors import (
    ConfigError,
    ConfigParseError,
    ProviderError,
    ProviderReadOnly,
    SubprocessFailure,
    UnknownSecret,
)
from ..domains.models import (
    DEFAULT_PROFILE,
    Declaration,
    ImportReport,
    Profile,
    Project,
    ResolvedSecretSet,
    SecretSpec,
    UserConfig,
)
from ..domains.precedence import PROFILE_ENV_VAR, PROVIDER_ENV_VAR, resolve_profile, resolve_provider
from ..providers.base import Provider, ProviderRegistry
from ..providers.registry import REGISTRY
from .resolver import resolve_secret, resolve_secrets

logger = logging.getLogger(__name__)


@dataclass
class SecretContext:
    """
    Everything needed to operate on secrets for one invocation.

    Built fresh per invocation by ``load``; nothing is cached across calls.
    """
    declaration: Declaration
    profile: str
    provider: Provider
    environ: Mapping[str, str]
    registry: ProviderRegistry = REGISTRY

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        profile: Optional[str] = None,
        provider: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        user_config: Optional[UserConfig] = None,
        registry: ProviderRegistry = REGISTRY,
    ) -> "SecretContext":
        """
        Load the declaration and pick the active profile and provider.

        Args:
            path: secretspec.toml path (searched upward from cwd if omitted)
            profile: Profile override (highest precedence)
            provider: Provider identifier override (highest precedence)
            environ: Process environment (defaults to os.environ)
            user_config: User config (loaded from disk if omitted)
            registry: Provider registry

        Raises:
            ConfigError: For parse, inheritance or provider URI problems
        """
        environ = os.environ if environ is None else environ
        declaration = load_declaration(path if path else find_declaration())
        user_config = user_config if user_config is not None else load_user_config()

        active_profile = resolve_profile(profile, environ.get(PROFILE_ENV_VAR), user_config.profile).value
        provider_uri = resolve_provider(
            provider, environ.get(PROVIDER_ENV_VAR), user_config.provider_for(active_profile)
        ).value

        if active_profile != DEFAULT_PROFILE and active_profile not in declaration.profiles:
            logger.warning(
                f"Profile '{active_profile}' is not declared in {declaration.source}; "
                f"using the '{DEFAULT_PROFILE}' profile"
            )

        return cls(
            declaration=declaration,
            profile=active_profile,
            provider=registry.create(provider_uri, environ=environ),
            environ=environ,
            registry=registry,
        )

    @property
    def project(self) -> str:
        return self.declaration.project.name

    def check(self) -> ResolvedSecretSet:
        """Resolve all secrets; raises MissingRequiredSecret listing every gap."""
        return resolve_secrets(self.declaration, self.profile, self.provider)

    def get(self, key: str) -> Optional[str]:
        """Resolve one declared secret through the full fallback chain."""
        return resolve_secret(self.declaration, self.profile, self.provider, key)

    def set(self, key: str, value: str) -> None:
        """
        Store one declared secret under the active profile.

        Raises:
            UnknownSecret: If ``key`` is not declared
            ProviderReadOnly: If the provider does not allow writes
        """
        if key not in self.declaration.effective_profile(self.profile).secrets:
            raise UnknownSecret(key, self.profile)
        if not self.provider.allows_set():
            raise ProviderReadOnly(
                self.provider.name,
                f"Provider '{self.provider.uri_string}' is read-only; cannot set '{key}'",
            )
        self.provider.set(self.project, self.profile, key, value)
        logger.info(f"Secret '{key}' saved to {self.provider.uri_string} (profile '{self.profile}')")

    def run(self, command: Sequence[str]) -> int:
        """
        Run ``command`` with resolved secrets added to its environment.

        Resolution completes before the command starts; nothing is written to disk.

        Returns:
            0 when the command succeeds

        Raises:
            MissingRequiredSecret: Before spawning, if any required secret is missing
            SubprocessFailure: With the command's exit status when it fails
        """
        if not command:
            raise ConfigError("No command given to run")

        resolved = self.check()
        env = dict(self.environ)
        env.update(resolved.as_environment())

        logger.debug(f"Running {command[0]} with {len(resolved.as_environment())} secrets injected")
        try:
            result = subprocess.run(list(command), env=env, check=False)
        except FileNotFoundError as e:
            raise SubprocessFailure(command, 127, f"Command not found: {command[0]}") from e
        except PermissionError as e:
            raise SubprocessFailure(command, 126, f"Command not executable: {command[0]}") from e

        if result.returncode != 0:
            raise SubprocessFailure(command, result.returncode)
        return 0

    def import_secrets(self, source_uri: str, overwrite: bool = False) -> ImportReport:
        """
        Copy every declared secret from ``source_uri`` into the active provider.

        Each value is written under the profile it was found at in the source,
        so resolving against the destination reproduces the source's result.
        Per-key failures are collected, not raised.

        Raises:
            ProviderReadOnly: If the destination does not allow writes
            InvalidProviderURI: If ``source_uri`` cannot be parsed
        """
        source = self.registry.create(source_uri, environ=self.environ)
        destination = self.provider
        if not destination.allows_set():
            raise ProviderReadOnly(
                destination.name,
                f"Cannot import into read-only provider '{destination.uri_string}'",
            )

        report = ImportReport(source=source.uri_string, destination=destination.uri_string)
        profiles = [self.profile] if self.profile == DEFAULT_PROFILE else [self.profile, DEFAULT_PROFILE]

        for key in self.declaration.effective_profile(self.profile).secrets:
            try:
                found_at, value = None, None
                for profile in profiles:
                    value = source.get(self.project, profile, key)
                    if value is not None:
                        found_at = profile
                        break

                if found_at is None:
                    logger.debug(f"{key}: not found in {source.uri_string}")
                    report.skipped.append(key)
                    continue

                if not overwrite and destination.get(self.project, found_at, key) is not None:
                    logger.debug(f"{key}: already present in {destination.uri_string}")
                    report.skipped.append(key)
                    continue

                destination.set(self.project, found_at, key, value)
                report.migrated.append(key)
            except ProviderError as e:
                logger.warning(f"Failed to import '{key}': {e}")
                report.failed[key] = str(e)

        logger.info(
            f"Imported {len(report.migrated)} secrets from {report.source} to {report.destination} "
            f"({len(report.skipped)} skipped, {len(report.failed)} failed)"
        )
        return report


def init_declaration(
    path: Optional[Union[str, Path]] = None,
    project_name: Optional[str] = None,
    from_dotenv: Optional[Union[str, Path]] = None,
    force: bool = False,
) -> Path:
    """
    Write a new secretspec.toml.

    Args:
        path: Target file (defaults to ./secretspec.toml)
        project_name: Project name (defaults to the target directory name)
        from_dotenv: Optional .env file whose keys become required secrets
        force: Overwrite an existing file

    Returns:
        Path of the written declaration

    Raises:
        ConfigError: If the file exists and ``force`` is not set, or the
            .env file is missing
    """
    path = Path(path) if path else Path.cwd() / DECLARATION_FILENAME
    if path.exists() and not force:
        raise ConfigError(f"{path} already exists (use --force to overwrite)")

    name = project_name or path.resolve().parent.name or "my-project"

    secrets = {}
    if from_dotenv:
        dotenv_path = Path(from_dotenv)
        if not dotenv_path.is_file():
            raise ConfigParseError(f"Dotenv file not found: {dotenv_path}")
        for key in dotenv_values(dotenv_path, interpolate=False):
            if not SECRET_NAME_PATTERN.match(key):
                logger.warning(f"Skipping '{key}' from {dotenv_path}: not a valid environment variable name")
                continue
            secrets[key] = SecretSpec(description=f"{key} secret", required=True)
        logger.info(f"Imported {len(secrets)} keys from {dotenv_path}")
    else:
        secrets["DATABASE_URL"] = SecretSpec(description="Database connection string", required=True)

    declaration = Declaration(
        project=Project(name=name, revision="1.0"),
        profiles={
            DEFAULT_PROFILE: Profile(name=DEFAULT_PROFILE, secrets=secrets),
            "development": Profile(name="development"),
        },
    )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_declaration(declaration), encoding="utf-8")
    logger.info(f"Created {path}")
    return path
