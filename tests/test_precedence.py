"""Tests for profile/provider precedence, provider URI parsing and the registry."""
import pytest

from secretspec.secrets.domains.errors import DuplicateProvider, InvalidProviderURI
from secretspec.secrets.domains.precedence import (
    resolve_profile,
    resolve_provider,
    resolve_ranked,
)
from secretspec.secrets.domains.provider_uri import parse_provider_uri
from secretspec.secrets.providers.base import ProviderEntry, ProviderRegistry
from secretspec.secrets.providers.dotenv_provider import DotEnvProvider
from secretspec.secrets.providers.registry import REGISTRY


class TestRankedResolution:
    """Test suite for the generic ranked-override resolver."""

    def test_first_set_candidate_wins(self):
        choice = resolve_ranked([("a", None), ("b", 2), ("c", 3)], 0)
        assert choice.value == 2
        assert choice.source == "b"

    def test_empty_string_counts_as_unset(self):
        choice = resolve_ranked([("a", ""), ("b", "x")], "fallback")
        assert choice.value == "x"

    def test_fallback(self):
        choice = resolve_ranked([("a", None)], "fallback")
        assert choice.value == "fallback"
        assert choice.source == "fallback"

    @pytest.mark.parametrize("cli,env,config,expected", [
        ("cli", "env", "config", "cli"),
        (None, "env", "config", "env"),
        (None, None, "config", "config"),
        (None, None, None, "default"),
    ])
    def test_profile_precedence(self, cli, env, config, expected):
        """Test override > environment > user config > 'default'."""
        assert resolve_profile(cli, env, config).value == expected

    @pytest.mark.parametrize("cli,env,config,expected", [
        ("dotenv://.env", "env://", "bws://p", "dotenv://.env"),
        (None, "env://", "bws://p", "env://"),
        (None, None, "bws://p", "bws://p"),
        (None, None, None, "keyring"),
    ])
    def test_provider_precedence(self, cli, env, config, expected):
        """Test override > environment > user config > keyring."""
        assert resolve_provider(cli, env, config).value == expected


class TestParseProviderURI:
    """Test suite for provider identifier parsing."""

    @pytest.mark.parametrize("text", ["keyring", "keyring:", "keyring://", "KEYRING"])
    def test_scheme_only_forms(self, text):
        uri = parse_provider_uri(text)
        assert uri.scheme == "keyring"
        assert uri.location == ""

    def test_relative_path_shorthand(self):
        uri = parse_provider_uri("dotenv:.env.production")
        assert uri.scheme == "dotenv"
        assert uri.location == ".env.production"

    def test_absolute_path_shorthand(self):
        uri = parse_provider_uri("dotenv:/etc/app/.env")
        assert uri.location == "/etc/app/.env"

    def test_authority_host_becomes_first_path_segment(self):
        uri = parse_provider_uri("dotenv://config/prod/.env")
        assert uri.host == "config"
        assert uri.path == "/prod/.env"
        assert uri.location == "config/prod/.env"

    def test_dotfile_as_host(self):
        uri = parse_provider_uri("dotenv://.env.production")
        assert uri.location == ".env.production"

    def test_user_info_and_host(self):
        uri = parse_provider_uri("bitwarden://myorg@Collection-456")
        assert uri.username == "myorg"
        assert uri.host == "Collection-456"

    def test_query_parameters(self):
        uri = parse_provider_uri("bitwarden://?server=https://vault.company.com&org=myorg")
        assert uri.host is None
        assert uri.query == {"server": "https://vault.company.com", "org": "myorg"}

    def test_localhost_is_dropped(self):
        assert parse_provider_uri("env://localhost").host is None

    def test_raw_is_preserved(self):
        assert parse_provider_uri("bws://project-id?token=abc").raw == "bws://project-id?token=abc"

    @pytest.mark.parametrize("text", ["", "   ", "1password://vault", "bad scheme://x", "://x"])
    def test_malformed(self, text):
        with pytest.raises(InvalidProviderURI):
            parse_provider_uri(text)


class TestProviderRegistry:
    """Test suite for the provider registry."""

    def test_static_registry_schemes(self):
        """Test the process-wide registry exposes every built-in backend."""
        assert set(REGISTRY.schemes()) == {"keyring", "dotenv", "env", "gcsm", "bitwarden", "bws"}

    def test_duplicate_scheme_rejected(self):
        """Test registering a scheme twice fails."""
        registry = ProviderRegistry()
        registry.register(DotEnvProvider)

        with pytest.raises(DuplicateProvider) as exc_info:
            registry.register(DotEnvProvider)

        assert "dotenv" in str(exc_info.value)

    def test_duplicate_in_static_table_rejected(self):
        """Test a static table with a repeated scheme fails at construction."""
        entry = ProviderEntry("dotenv", DotEnvProvider, "dotenv", "")
        with pytest.raises(DuplicateProvider):
            ProviderRegistry((entry, entry))

    def test_unknown_scheme(self):
        """Test an unregistered scheme raises InvalidProviderURI listing options."""
        with pytest.raises(InvalidProviderURI) as exc_info:
            REGISTRY.create("vault://secret")

        assert "vault" in str(exc_info.value)
        assert "keyring" in str(exc_info.value)

    def test_create_passes_parameters(self, tmp_path):
        """Test the factory receives the parsed URI."""
        provider = REGISTRY.create(f"dotenv:{tmp_path}/.env.test")

        assert provider.name == "dotenv"
        assert provider.path == tmp_path / ".env.test"
        assert provider.uri_string == f"dotenv:{tmp_path}/.env.test"

    def test_bws_and_bitwarden_share_backend(self):
        """Test both Bitwarden schemes map to the same backend."""
        assert REGISTRY.create("bws://project-id").name == "bitwarden"
        assert REGISTRY.create("bitwarden://").name == "bitwarden"

    def test_backend_rejects_malformed_parameters(self, tmp_path):
        """Test backend parameter validation surfaces as InvalidProviderURI."""
        with pytest.raises(InvalidProviderURI):
            REGISTRY.create(f"gcsm://my-project?credentials={tmp_path}/missing.json")
