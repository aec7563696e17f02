"""Resolve declared secrets against a provider."""
import logging
from typing import Optional, Tuple

from ..domains.errors import MissingRequiredSecret, UnknownSecret
from ..domains.models import DEFAULT_PROFILE, Declaration, ResolvedSecretSet, SecretSpec
from ..providers.base import Provider

logger = logging.getLogger(__name__)

SOURCE_PROVIDER = "provider"
SOURCE_DEFAULT_PROFILE = "default_profile"
SOURCE_DECLARED_DEFAULT = "declared_default"
SOURCE_ABSENT = "absent"


def _lookup(project: str, profile: str, key: str, spec: SecretSpec,
            provider: Provider) -> Tuple[Optional[str], str]:
    """
    Walk the fallback chain for one key.

    Order:
    1. Provider value stored under the active profile
    2. Provider value stored under the default profile
    3. Declared default (ignored for required secrets)

    ProviderUnavailable from the backend propagates unchanged.
    """
    value = provider.get(project, profile, key)
    if value is not None:
        return value, SOURCE_PROVIDER

    if profile != DEFAULT_PROFILE:
        value = provider.get(project, DEFAULT_PROFILE, key)
        if value is not None:
            return value, SOURCE_DEFAULT_PROFILE

    default = spec.effective_default
    if default is not None:
        return default, SOURCE_DECLARED_DEFAULT

    return None, SOURCE_ABSENT


def resolve_secrets(declaration: Declaration, profile: str, provider: Provider) -> ResolvedSecretSet:
    """
    Resolve every secret declared for ``profile`` (layered over the default profile).

    All keys are visited before failing so that every missing required secret
    is reported at once.

    Args:
        declaration: Flattened declaration
        profile: Active profile name
        provider: Active provider

    Returns:
        ResolvedSecretSet where optional unset secrets map to None

    Raises:
        MissingRequiredSecret: Listing every required key that did not resolve
        ProviderUnavailable: As soon as the backend cannot be consulted
    """
    project = declaration.project.name
    effective = declaration.effective_profile(profile)
    resolved = ResolvedSecretSet(profile=profile, provider=provider.uri_string)
    missing = []

    for key, spec in effective.secrets.items():
        value, source = _lookup(project, profile, key, spec, provider)
        resolved.secrets[key] = value
        resolved.sources[key] = source
        if value is None and spec.is_required:
            missing.append(key)
        logger.debug(f"{key}: {source}")

    if missing:
        raise MissingRequiredSecret(missing, profile=profile, provider=provider.uri_string)

    logger.info(
        f"Resolved {len(resolved.as_environment())}/{len(resolved.secrets)} secrets "
        f"for profile '{profile}' using {provider.uri_string}"
    )
    return resolved


def resolve_secret(declaration: Declaration, profile: str, provider: Provider, key: str) -> Optional[str]:
    """
    Resolve a single declared secret.

    Returns:
        The value, or None for an optional secret that is not set

    Raises:
        UnknownSecret: If ``key`` is not declared for ``profile``
        MissingRequiredSecret: If ``key`` is required and unresolved
    """
    spec = declaration.effective_profile(profile).secrets.get(key)
    if spec is None:
        raise UnknownSecret(key, profile)

    value, source = _lookup(declaration.project.name, profile, key, spec, provider)
    if value is None and spec.is_required:
        raise MissingRequiredSecret([key], profile=profile, provider=provider.uri_string)
    logger.debug(f"{key}: {source}")
    return value
