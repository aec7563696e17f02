"""Parser for provider identifiers.

Accepted forms:

    keyring                     plain scheme
    keyring:                    scheme with colon
    dotenv:.env.production      scheme with relative path
    dotenv:/etc/app/.env        scheme with absolute path
    dotenv://config/.env        authority form (host becomes first path segment)
    bitwarden://org@collection  authority with user info
    bws://project-id?token=...  query parameters
"""
import re
from urllib.parse import parse_qsl, unquote, urlsplit

from .errors import InvalidProviderURI
from .models import ProviderURI

SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")


def parse_provider_uri(text: str) -> ProviderURI:
    """
    Split a provider identifier into scheme and backend parameters.

    Args:
        text: Provider identifier

    Returns:
        ProviderURI with a lower-cased scheme

    Raises:
        InvalidProviderURI: If the identifier is empty or its scheme is malformed
    """
    raw = (text or "").strip()
    if not raw:
        raise InvalidProviderURI("Provider identifier cannot be empty")

    if ":" not in raw:
        scheme, rest = raw, ""
    else:
        scheme, rest = raw.split(":", 1)

    if not SCHEME_PATTERN.match(scheme):
        raise InvalidProviderURI(
            f"Invalid provider identifier '{raw}': scheme must start with a letter "
            f"and contain only letters, digits, '+', '-' or '.'"
        )
    scheme = scheme.lower()

    if not rest:
        return ProviderURI(scheme=scheme, raw=raw)

    try:
        parts = urlsplit(f"{scheme}:{rest}")
        username = parts.username
        password = parts.password
        host = parts.hostname if parts.netloc else None
        # hostname is lower-cased by urlsplit; keep the original spelling
        if host is not None:
            host = _original_host(parts.netloc)
    except ValueError as e:
        raise InvalidProviderURI(f"Invalid provider identifier '{raw}': {e}") from e

    if host == "localhost":
        host = None

    return ProviderURI(
        scheme=scheme,
        raw=raw,
        username=unquote(username) if username else None,
        password=unquote(password) if password else None,
        host=unquote(host) if host else None,
        path=unquote(parts.path),
        query=dict(parse_qsl(parts.query, keep_blank_values=True)),
    )


def _original_host(netloc: str) -> str:
    host = netloc.rsplit("@", 1)[-1]
    # Strip an explicit port
    if ":" in host and not host.endswith("]"):
        host = host.split(":", 1)[0]
    return host
