"""Ranked-override resolution for the active profile and provider.

Both lookups use the same precedence: explicit caller override, then an
environment variable, then the user config, then a built-in fallback.
"""
import logging
from dataclasses import dataclass
from typing import Generic, Optional, Sequence, Tuple, TypeVar

from .models import DEFAULT_PROFILE

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROFILE_ENV_VAR = "SECRETSPEC_PROFILE"
PROVIDER_ENV_VAR = "SECRETSPEC_PROVIDER"
DEFAULT_PROVIDER = "keyring"

SOURCES = ("override", "environment", "config")


@dataclass(frozen=True)
class RankedChoice(Generic[T]):
    """Winning value and the name of the source it came from."""
    value: T
    source: str


def resolve_ranked(candidates: Sequence[Tuple[str, Optional[T]]], fallback: T) -> RankedChoice[T]:
    """
    Return the first candidate that is set, or the fallback.

    Args:
        candidates: (source name, value) pairs in priority order; None and
            empty strings count as unset
        fallback: Value used when no candidate is set

    Returns:
        RankedChoice with the winning value and its source
    """
    for source, value in candidates:
        if value is not None and value != "":
            return RankedChoice(value, source)
    return RankedChoice(fallback, "fallback")


def resolve_profile(
    cli_value: Optional[str] = None,
    env_value: Optional[str] = None,
    config_value: Optional[str] = None,
) -> RankedChoice[str]:
    """Pick the active profile name. Never fails."""
    choice = resolve_ranked(list(zip(SOURCES, (cli_value, env_value, config_value))), DEFAULT_PROFILE)
    logger.debug(f"Using profile '{choice.value}' from {choice.source}")
    return choice


def resolve_provider(
    cli_value: Optional[str] = None,
    env_value: Optional[str] = None,
    config_value: Optional[str] = None,
) -> RankedChoice[str]:
    """Pick the active provider identifier. Parsing happens in the registry."""
    choice = resolve_ranked(list(zip(SOURCES, (cli_value, env_value, config_value))), DEFAULT_PROVIDER)
    logger.debug(f"Using provider '{choice.value}' from {choice.source}")
    return choice
