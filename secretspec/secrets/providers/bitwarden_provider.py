"""Bitwarden Password Manager (``bw``) and Secrets Manager (``bws``) backend.

Both services are driven through their command line tools, which must be
installed and authenticated:

    bitwarden://                       personal vault
    bitwarden://collection-id          organization collection
    bitwarden://org@collection         organization + collection
    bitwarden://?server=https://vault.company.com&folder=apps/{project}/{profile}
    bitwarden://?type=card&field=api_key
    bws://project-id                   Secrets Manager project
    bws://project-id?token=<access-token>
"""
import base64
import json
import logging
import subprocess
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type

from ..domains.errors import (
    InvalidProviderURI,
    ProviderError,
    ProviderUnavailable,
    ProviderWriteError,
)
from ..domains.models import ProviderURI
from .base import Provider

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 30
DEFAULT_FOLDER = "secretspec/{project}/{profile}"
FIELD_TYPE_HIDDEN = 1
ACCESS_TOKEN_ENV_VAR = "BWS_ACCESS_TOKEN"

INSTALL_HINT = (
    "To install it:\n"
    "  - npm: npm install -g {package}\n"
    "  - Download: https://bitwarden.com/help/{page}/"
)


class ItemType(Enum):
    """Bitwarden vault item types and their numeric codes."""
    LOGIN = 1
    SECURE_NOTE = 2
    CARD = 3
    IDENTITY = 4
    SSH_KEY = 5


ITEM_TYPE_NAMES = {
    "login": ItemType.LOGIN,
    "securenote": ItemType.SECURE_NOTE,
    "secure_note": ItemType.SECURE_NOTE,
    "note": ItemType.SECURE_NOTE,
    "card": ItemType.CARD,
    "identity": ItemType.IDENTITY,
    "sshkey": ItemType.SSH_KEY,
    "ssh_key": ItemType.SSH_KEY,
    "ssh": ItemType.SSH_KEY,
}

# JSON object holding each type's built-in fields
ITEM_SECTIONS = {
    ItemType.LOGIN: "login",
    ItemType.SECURE_NOTE: "secureNote",
    ItemType.CARD: "card",
    ItemType.IDENTITY: "identity",
    ItemType.SSH_KEY: "sshKey",
}

# Field names accepted in ?field= mapped to the built-in JSON property
NATIVE_FIELDS = {
    ItemType.LOGIN: {"password": "password", "username": "username", "totp": "totp"},
    ItemType.SECURE_NOTE: {},
    ItemType.CARD: {
        "number": "number",
        "code": "code", "cvv": "code", "cvc": "code",
        "cardholder": "cardholderName", "name": "cardholderName",
        "brand": "brand",
        "expmonth": "expMonth", "exp_month": "expMonth",
        "expyear": "expYear", "exp_year": "expYear",
    },
    ItemType.IDENTITY: {
        "email": "email",
        "username": "username",
        "phone": "phone",
        "firstname": "firstName", "first_name": "firstName",
        "lastname": "lastName", "last_name": "lastName",
        "company": "company",
    },
    ItemType.SSH_KEY: {
        "private_key": "privateKey", "privatekey": "privateKey", "private": "privateKey",
        "public_key": "publicKey", "publickey": "publicKey", "public": "publicKey",
        "fingerprint": "keyFingerprint",
    },
}

# Without ?field=, the field is guessed from words in the secret name; a
# fallback of None stores the secret in a custom field named after the key
FIELD_HINTS = {
    ItemType.LOGIN: ([(("user", "login"), "username"), (("totp", "2fa", "mfa"), "totp")], "password"),
    ItemType.SECURE_NOTE: ([], "value"),
    ItemType.CARD: (
        [(("code", "cvv", "cvc"), "code"), (("cardholder", "name"), "cardholder"), (("number", "card"), "number")],
        None,
    ),
    ItemType.IDENTITY: (
        [(("phone", "tel"), "phone"), (("user", "login"), "username"), (("email", "mail"), "email")],
        None,
    ),
    ItemType.SSH_KEY: ([(("public", "pub"), "public_key"), (("passphrase", "password"), "passphrase")], "private_key"),
}


def parse_item_type(value: str) -> ItemType:
    """
    Map a ``?type=`` value to an ItemType.

    Raises:
        InvalidProviderURI: If the value names no Bitwarden item type
    """
    item_type = ITEM_TYPE_NAMES.get(value.strip().lower())
    if item_type is None:
        raise InvalidProviderURI(
            f"Unknown Bitwarden item type '{value}'. "
            f"Use one of: login, securenote, card, identity, sshkey"
        )
    return item_type


def default_field(item_type: ItemType, key: str) -> str:
    """Pick the item field a secret lives in when the URI names none."""
    hints, fallback = FIELD_HINTS[item_type]
    lowered = key.lower()
    for words, field in hints:
        if any(word in lowered for word in words):
            return field
    return fallback or key


def _run_cli(binary: str, args: List[str], provider: str,
             failure: Type[ProviderError] = ProviderUnavailable,
             package: str = "@bitwarden/cli", page: str = "cli",
             env: Optional[Mapping[str, str]] = None) -> str:
    """
    Run a Bitwarden CLI command and return its stdout.

    Raises:
        ProviderUnavailable: If the CLI is missing, times out, or reports an
            authentication problem
        failure: For any other non-zero exit
    """
    try:
        result = subprocess.run(
            [binary, *args],
            capture_output=True,
            text=True,
            timeout=COMMAND_TIMEOUT,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise ProviderUnavailable(
            provider,
            f"Bitwarden CLI ({binary}) is not installed.\n\n"
            + INSTALL_HINT.format(package=package, page=page),
        ) from e
    except subprocess.TimeoutExpired as e:
        raise ProviderUnavailable(provider, f"'{binary} {args[0]}' timed out after {COMMAND_TIMEOUT}s") from e

    if result.returncode != 0:
        stderr = result.stderr.strip()
        lowered = stderr.lower()
        if "not logged in" in lowered:
            raise ProviderUnavailable(provider, "Bitwarden authentication required. Please run 'bw login' first.")
        if "vault is locked" in lowered:
            raise ProviderUnavailable(
                provider,
                "Bitwarden vault is locked. Please run 'bw unlock' and set the BW_SESSION environment variable.",
            )
        if "access token" in lowered or "unauthorized" in lowered:
            raise ProviderUnavailable(provider, f"Bitwarden Secrets Manager authentication failed: {stderr}")
        raise failure(provider, f"'{binary} {args[0]}' failed: {stderr}")

    return result.stdout


def _parse_json(output: str, provider: str) -> Any:
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise ProviderUnavailable(provider, f"Unexpected output from Bitwarden CLI: {e}") from e


def _encode_item(item: Dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(item).encode("utf-8")).decode("ascii")


class BitwardenProvider(Provider):
    """Dispatches to the Password Manager or Secrets Manager by URI scheme."""

    name = "bitwarden"
    description = "Bitwarden Password Manager and Secrets Manager"

    def __init__(self, uri: Optional[ProviderURI] = None, environ: Optional[Mapping[str, str]] = None):
        super().__init__(uri, environ)
        scheme = uri.scheme if uri else "bitwarden"
        query = uri.query if uri else {}

        if scheme == "bitwarden":
            self.service = "password_manager"
            self.organization_id = query.get("org") or query.get("organization") or (uri.username if uri else None)
            self.collection_id = query.get("collection") or (uri.host if uri else None)
            self.server = query.get("server")
            self.folder = query.get("folder") or DEFAULT_FOLDER
            self.item_type = parse_item_type(query["type"]) if query.get("type") else ItemType.LOGIN
            self.project_id = None
            self.access_token = None
        elif scheme == "bws":
            self.service = "secrets_manager"
            self.project_id = query.get("project") or (uri.host if uri else None)
            self.access_token = query.get("token")
            self.organization_id = None
            self.collection_id = None
            self.server = None
            self.folder = None
            self.item_type = None
        else:
            raise InvalidProviderURI(
                f"Invalid scheme '{scheme}' for Bitwarden provider. "
                f"Use 'bitwarden://' for Password Manager or 'bws://' for Secrets Manager"
            )

        self.field = query.get("field") or None
        self._server_configured = False

    # --- Password Manager ---

    def _bw(self, args: List[str], failure: Type[ProviderError] = ProviderUnavailable) -> str:
        if self.server and not self._server_configured:
            _run_cli("bw", ["config", "server", self.server], self.name, env=self.environ)
            self._server_configured = True
        return _run_cli("bw", args, self.name, failure=failure, env=self.environ)

    def _ensure_unlocked(self) -> None:
        status = _parse_json(self._bw(["status"]), self.name)
        if status.get("status") != "unlocked":
            raise ProviderUnavailable(
                self.name,
                "Bitwarden authentication required. Please run 'bw login' and 'bw unlock', "
                "then set the BW_SESSION environment variable.",
            )

    def _org_id(self) -> Optional[str]:
        return self.environ.get("BITWARDEN_ORGANIZATION") or self.organization_id

    def _collection_id(self) -> Optional[str]:
        return self.environ.get("BITWARDEN_COLLECTION") or self.collection_id

    def item_name(self, project: str, profile: str, key: str) -> str:
        folder = self.folder.replace("{project}", project).replace("{profile}", profile)
        return f"{folder}/{key}"

    def _find_item(self, item_name: str) -> Optional[Dict[str, Any]]:
        args = ["list", "items", "--search", item_name]
        org_id = self._org_id()
        if org_id:
            args.extend(["--organizationid", org_id])
        items = _parse_json(self._bw(args), self.name)
        # --search is fuzzy; only an exact name counts
        for item in items:
            if item.get("name") == item_name:
                return item
        return None

    @staticmethod
    def _type_of(item: Dict[str, Any]) -> ItemType:
        try:
            return ItemType(item.get("type"))
        except ValueError:
            return ItemType.LOGIN

    def _field_for(self, item_type: ItemType, key: str) -> str:
        return self.field or default_field(item_type, key)

    def _extract_value(self, item: Dict[str, Any], key: str) -> Optional[str]:
        item_type = self._type_of(item)
        field = self._field_for(item_type, key)

        fields = {f.get("name"): f.get("value") for f in item.get("fields") or []}
        if field in fields:
            return fields[field]

        native = NATIVE_FIELDS[item_type].get(field.lower())
        if native:
            section = item.get(ITEM_SECTIONS[item_type]) or {}
            if section.get(native) is not None:
                return section[native]

        if field == "notes":
            return item.get("notes")
        if "value" in fields:
            return fields["value"]
        # Hand-made secure notes keep the secret in the note body
        if item_type is ItemType.SECURE_NOTE:
            return item.get("notes")
        return None

    def _apply_value(self, item: Dict[str, Any], key: str, value: str) -> Dict[str, Any]:
        item_type = self._type_of(item)
        field = self._field_for(item_type, key)

        native = NATIVE_FIELDS[item_type].get(field.lower())
        if native:
            section_name = ITEM_SECTIONS[item_type]
            section = dict(item.get(section_name) or {})
            section[native] = value
            item[section_name] = section
            return item
        if field == "notes":
            item["notes"] = value
            return item

        fields = [f for f in item.get("fields") or [] if f.get("name") != field]
        fields.append({"name": field, "value": value, "type": FIELD_TYPE_HIDDEN})
        item["fields"] = fields
        return item

    def _new_item(self, item_name: str, project: str, profile: str, key: str) -> Dict[str, Any]:
        collection_id = self._collection_id()
        item = {
            "type": self.item_type.value,
            "name": item_name,
            "notes": f"secretspec managed secret: {project}/{profile}/{key}",
            "fields": [],
            "organizationId": self._org_id(),
            "collectionIds": [collection_id] if collection_id else [],
        }
        # Secure notes carry a fixed sub-type; other sections start empty
        item[ITEM_SECTIONS[self.item_type]] = {"type": 0} if self.item_type is ItemType.SECURE_NOTE else {}
        return item

    def _get_from_password_manager(self, project: str, profile: str, key: str) -> Optional[str]:
        self._ensure_unlocked()
        item = self._find_item(self.item_name(project, profile, key))
        if item is None:
            return None
        return self._extract_value(item, key)

    def _set_to_password_manager(self, project: str, profile: str, key: str, value: str) -> None:
        self._ensure_unlocked()
        item_name = self.item_name(project, profile, key)
        existing = self._find_item(item_name)

        if existing is not None:
            item = self._apply_value(existing, key, value)
            self._bw(["edit", "item", existing["id"], _encode_item(item)], failure=ProviderWriteError)
            logger.debug(f"Updated Bitwarden item {item_name}")
            return

        item = self._apply_value(self._new_item(item_name, project, profile, key), key, value)
        self._bw(["create", "item", _encode_item(item)], failure=ProviderWriteError)
        logger.debug(f"Created Bitwarden {self.item_type.name.lower()} item {item_name}")

    # --- Secrets Manager ---

    def _bws(self, args: List[str], failure: Type[ProviderError] = ProviderUnavailable) -> str:
        env = dict(self.environ)
        # The token goes to the child's environment; argv is visible to other users
        if self.access_token:
            env[ACCESS_TOKEN_ENV_VAR] = self.access_token
        return _run_cli("bws", [*args, "--output", "json"], self.name, failure=failure,
                        package="@bitwarden/sdk-napi", page="secrets-manager-cli", env=env)

    def secret_key(self, project: str, profile: str, key: str) -> str:
        return f"{project}/{profile}/{key}"

    def _find_secret(self, secret_key: str) -> Optional[Dict[str, Any]]:
        args = ["secret", "list"]
        if self.project_id:
            args.append(self.project_id)
        for secret in _parse_json(self._bws(args), self.name):
            if secret.get("key") == secret_key:
                return secret
        return None

    def _get_from_secrets_manager(self, project: str, profile: str, key: str) -> Optional[str]:
        secret = self._find_secret(self.secret_key(project, profile, key))
        return secret.get("value") if secret else None

    def _set_to_secrets_manager(self, project: str, profile: str, key: str, value: str) -> None:
        secret_key = self.secret_key(project, profile, key)
        existing = self._find_secret(secret_key)
        if existing is not None:
            self._bws(["secret", "edit", existing["id"], "--value", value], failure=ProviderWriteError)
            return

        if not self.project_id:
            raise ProviderWriteError(
                self.name,
                "Creating a Secrets Manager secret requires a project id: use bws://<project-id>",
            )
        note = f"secretspec managed secret: {secret_key}"
        self._bws(["secret", "create", secret_key, value, self.project_id, "--note", note],
                  failure=ProviderWriteError)

    # --- Provider interface ---

    def get(self, project: str, profile: str, key: str) -> Optional[str]:
        if self.service == "secrets_manager":
            return self._get_from_secrets_manager(project, profile, key)
        return self._get_from_password_manager(project, profile, key)

    def set(self, project: str, profile: str, key: str, value: str) -> None:
        if self.service == "secrets_manager":
            self._set_to_secrets_manager(project, profile, key, value)
        else:
            self._set_to_password_manager(project, profile, key, value)

    def allows_set(self) -> bool:
        return True
