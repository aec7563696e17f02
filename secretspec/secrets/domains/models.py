"""Domain models for secret declarations and resolution."""
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional, Tuple

DEFAULT_PROFILE = "default"


@dataclass(frozen=True)
class Project:
    """Identifies the declaring project and its schema revision."""
    name: str
    revision: str = "1.0"


@dataclass(frozen=True)
class SecretSpec:
    """Declared requirements for one secret.

    Fields left as None were not specified in the declaration, which lets
    merging distinguish "inherit" from "override".
    """
    description: Optional[str] = None
    required: Optional[bool] = None
    default: Optional[str] = None

    @property
    def is_required(self) -> bool:
        if self.required is not None:
            return self.required
        return self.default is None

    @property
    def effective_default(self) -> Optional[str]:
        """Declared default, or None when the secret is required."""
        if self.is_required:
            return None
        return self.default

    def merged_with(self, override: "SecretSpec") -> "SecretSpec":
        """Return a copy where every field set on ``override`` wins."""
        return SecretSpec(
            description=override.description if override.description is not None else self.description,
            required=override.required if override.required is not None else self.required,
            default=override.default if override.default is not None else self.default,
        )


@dataclass(frozen=True)
class Profile:
    """Named bundle of secret requirements for one environment."""
    name: str
    secrets: Dict[str, SecretSpec] = field(default_factory=dict)

    def merged_with(self, override: "Profile") -> "Profile":
        secrets = dict(self.secrets)
        for key, spec in override.secrets.items():
            if key in secrets:
                secrets[key] = secrets[key].merged_with(spec)
            else:
                secrets[key] = spec
        return Profile(name=override.name, secrets=secrets)


@dataclass(frozen=True)
class Declaration:
    """Parsed secretspec.toml, possibly flattened from several files."""
    project: Project
    profiles: Dict[str, Profile] = field(default_factory=dict)
    extends: Tuple[str, ...] = ()
    source: Optional[Path] = None

    def effective_profile(self, name: str) -> Profile:
        """Profile ``name`` layered over the default profile.

        An unknown profile name resolves to the default profile alone.
        """
        base = self.profiles.get(DEFAULT_PROFILE, Profile(name=DEFAULT_PROFILE))
        if name == DEFAULT_PROFILE or name not in self.profiles:
            return Profile(name=name, secrets=dict(base.secrets))
        return base.merged_with(self.profiles[name])

    def without_extends(self) -> "Declaration":
        return replace(self, extends=())


@dataclass(frozen=True)
class UserConfig:
    """User-scoped preferences (not version controlled)."""
    provider: Optional[str] = None
    profile: Optional[str] = None
    profiles: Dict[str, str] = field(default_factory=dict)

    def provider_for(self, profile: str) -> Optional[str]:
        """Per-profile provider override, falling back to the default provider."""
        return self.profiles.get(profile) or self.provider


@dataclass(frozen=True)
class ProviderURI:
    """Parsed provider identifier such as ``dotenv://.env.production``."""
    scheme: str
    raw: str
    username: Optional[str] = None
    password: Optional[str] = None
    host: Optional[str] = None
    path: str = ""
    query: Dict[str, str] = field(default_factory=dict)

    @property
    def location(self) -> str:
        """Host and path joined back together (used by file-based backends)."""
        return f"{self.host or ''}{self.path}"


@dataclass
class ResolvedSecretSet:
    """Result of resolving every declared secret for one profile/provider."""
    profile: str
    provider: str
    secrets: Dict[str, Optional[str]] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)

    def as_environment(self) -> Dict[str, str]:
        """Present values only, suitable for a subprocess environment."""
        return {key: value for key, value in self.secrets.items() if value is not None}


@dataclass
class ImportReport:
    """Per-key tally of a provider-to-provider migration."""
    source: str
    destination: str
    migrated: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
