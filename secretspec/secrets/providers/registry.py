"""Process-wide provider registry.

Built once at import time from a static table; nothing registers backends
at runtime.
"""
from .base import ProviderEntry, ProviderRegistry
from .bitwarden_provider import BitwardenProvider
from .dotenv_provider import DotEnvProvider
from .env_provider import EnvProvider
from .gcp_provider import GCPSecretManagerProvider
from .keyring_provider import KeyringProvider

PROVIDERS = (
    ProviderEntry("keyring", KeyringProvider, KeyringProvider.name, KeyringProvider.description,
                  ("keyring://",)),
    ProviderEntry("dotenv", DotEnvProvider, DotEnvProvider.name, DotEnvProvider.description,
                  ("dotenv://.env", "dotenv:.env.production")),
    ProviderEntry("env", EnvProvider, EnvProvider.name, EnvProvider.description,
                  ("env://",)),
    ProviderEntry("gcsm", GCPSecretManagerProvider, GCPSecretManagerProvider.name,
                  GCPSecretManagerProvider.description,
                  ("gcsm://my-gcp-project", "gcsm://my-gcp-project?credentials=/path/to/sa.json")),
    ProviderEntry("bitwarden", BitwardenProvider, BitwardenProvider.name, BitwardenProvider.description,
                  ("bitwarden://", "bitwarden://collection-id", "bitwarden://org@collection")),
    ProviderEntry("bws", BitwardenProvider, BitwardenProvider.name, BitwardenProvider.description,
                  ("bws://", "bws://project-id")),
)

REGISTRY = ProviderRegistry(PROVIDERS)
