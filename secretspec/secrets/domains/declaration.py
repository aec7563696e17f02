"""Loader for secretspec.toml declarations, including ``extends`` inheritance."""
import json
import logging
import os
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import ConfigParseError, CyclicInheritance, DeclarationNotFound, MissingParent
from .models import Declaration, Profile, Project, SecretSpec

logger = logging.getLogger(__name__)

DECLARATION_FILENAME = "secretspec.toml"
SECRET_FIELDS = {"description", "required", "default"}

# Secrets are injected as environment variables, so keys must be valid names
SECRET_NAME_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

PathLike = Union[str, os.PathLike]


def find_declaration(start: Optional[PathLike] = None) -> Path:
    """
    Locate secretspec.toml by walking up from ``start``.

    Args:
        start: Directory to start from (defaults to the current directory)

    Returns:
        Absolute path to the declaration file

    Raises:
        DeclarationNotFound: If no declaration exists in ``start`` or any parent
    """
    current = Path(start or Path.cwd()).resolve()
    for directory in [current, *current.parents]:
        candidate = directory / DECLARATION_FILENAME
        if candidate.is_file():
            logger.debug(f"Found declaration at {candidate}")
            return candidate

    raise DeclarationNotFound(
        f"No {DECLARATION_FILENAME} found in {current} or any parent directory.\n"
        f"Create one with: secretspec init"
    )


def parse_declaration(text: str, source: Optional[Path] = None) -> Declaration:
    """
    Parse declaration text without resolving ``extends``.

    Args:
        text: TOML content
        source: File the text came from, used in error messages

    Returns:
        Declaration with ``extends`` left unresolved

    Raises:
        ConfigParseError: If the text is not valid TOML or violates the schema
    """
    where = str(source) if source else "<declaration>"
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Failed to parse TOML declaration at {where}: {e}") from e

    project_data = data.get("project")
    if not isinstance(project_data, dict):
        raise ConfigParseError(
            f"Missing [project] table in {where}\n"
            f"Required format:\n"
            f"[project]\n"
            f"name = \"my-app\"\n"
            f"revision = \"1.0\""
        )

    name = project_data.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigParseError(f"Missing 'project.name' in {where}")

    revision = project_data.get("revision", "1.0")
    if not isinstance(revision, str):
        raise ConfigParseError(f"'project.revision' must be a string in {where}")

    extends = project_data.get("extends", [])
    if isinstance(extends, str):
        extends = [extends]
    if not isinstance(extends, list) or not all(isinstance(item, str) for item in extends):
        raise ConfigParseError(f"'project.extends' must be a list of paths in {where}")

    profiles_data = data.get("profiles", {})
    if not isinstance(profiles_data, dict):
        raise ConfigParseError(f"'profiles' must be a table in {where}")

    profiles = {}
    for profile_name, entries in profiles_data.items():
        if not isinstance(entries, dict):
            raise ConfigParseError(f"Profile '{profile_name}' must be a table in {where}")
        for key in entries:
            if not SECRET_NAME_PATTERN.match(key):
                raise ConfigParseError(
                    f"Invalid secret name 'profiles.{profile_name}.{key}' in {where}: "
                    f"names must match [A-Za-z_][A-Za-z0-9_]*"
                )
        profiles[profile_name] = Profile(
            name=profile_name,
            secrets={
                key: _parse_secret(entry, f"profiles.{profile_name}.{key}", where)
                for key, entry in entries.items()
            },
        )

    return Declaration(
        project=Project(name=name, revision=revision),
        profiles=profiles,
        extends=tuple(extends),
        source=source,
    )


def _parse_secret(entry: Any, path: str, where: str) -> SecretSpec:
    if not isinstance(entry, dict):
        raise ConfigParseError(f"'{path}' must be an inline table in {where}")

    unknown = set(entry) - SECRET_FIELDS
    if unknown:
        raise ConfigParseError(
            f"Unknown field(s) {', '.join(sorted(unknown))} for '{path}' in {where}"
        )

    description = entry.get("description")
    required = entry.get("required")
    default = entry.get("default")

    if description is not None and not isinstance(description, str):
        raise ConfigParseError(f"'{path}.description' must be a string in {where}")
    if required is not None and not isinstance(required, bool):
        raise ConfigParseError(f"'{path}.required' must be true or false in {where}")
    if default is not None and not isinstance(default, str):
        raise ConfigParseError(f"'{path}.default' must be a string in {where}")

    # A required secret must come from a provider, never from the declaration
    if required is True and default:
        raise ConfigParseError(
            f"'{path}' is required and also declares a default in {where}; "
            f"set required = false or remove the default"
        )

    return SecretSpec(description=description, required=required, default=default)


def read_declaration(path: PathLike) -> Declaration:
    """Read and parse a single declaration file (no inheritance)."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigParseError(f"Failed to read declaration at {path}: {e}") from e
    return parse_declaration(text, source=path)


def merge_declarations(base: Declaration, override: Declaration) -> Declaration:
    """
    Merge ``override`` over ``base`` field by field.

    Profiles and keys are unioned. For keys present in both, every field the
    override sets replaces the base field; unset fields are inherited.
    Project metadata comes from the override.
    """
    profiles = dict(base.profiles)
    for name, profile in override.profiles.items():
        if name in profiles:
            profiles[name] = profiles[name].merged_with(profile)
        else:
            profiles[name] = profile

    return Declaration(
        project=override.project,
        profiles=profiles,
        extends=(),
        source=override.source,
    )


def _resolve_parent_path(reference: str, declared_in: Path) -> Path:
    parent = Path(reference).expanduser()
    if not parent.is_absolute():
        parent = declared_in.parent / parent
    if parent.is_dir():
        parent = parent / DECLARATION_FILENAME
    return parent.resolve()


def load_declaration(path: PathLike) -> Declaration:
    """
    Load a declaration and flatten its ``extends`` chain.

    Parents are merged in listed order (later parents override earlier ones)
    and the child overrides all of them. Relative ``extends`` paths are
    resolved against the directory of the declaring file; a directory means
    its secretspec.toml.

    Args:
        path: Path to secretspec.toml

    Returns:
        Flattened Declaration with empty ``extends``

    Raises:
        ConfigParseError: If any file in the chain is malformed
        MissingParent: If an ``extends`` entry does not exist
        CyclicInheritance: If a file appears twice in one ancestor chain
    """
    root = Path(path).resolve()
    if not root.is_file():
        raise DeclarationNotFound(f"Declaration file not found: {root}")
    return _load_with_ancestors(root, ())


def _load_with_ancestors(path: Path, chain: Tuple[Path, ...]) -> Declaration:
    if path in chain:
        raise CyclicInheritance(str(p) for p in (*chain, path))

    declaration = read_declaration(path)
    if not declaration.extends:
        return declaration

    chain = (*chain, path)
    merged: Optional[Declaration] = None
    for reference in declaration.extends:
        parent_path = _resolve_parent_path(reference, path)
        if parent_path in chain:
            raise CyclicInheritance(str(p) for p in (*chain, parent_path))
        if not parent_path.is_file():
            raise MissingParent(str(parent_path), referenced_by=str(path))

        logger.debug(f"{path} extends {parent_path}")
        parent = _load_with_ancestors(parent_path, chain)
        merged = parent if merged is None else merge_declarations(merged, parent)

    return merge_declarations(merged, declaration)


def _toml_string(value: str) -> str:
    # JSON string escaping is a valid TOML basic string
    return json.dumps(value, ensure_ascii=False)


def _toml_key(key: str) -> str:
    if key and all(c.isalnum() or c in "_-" for c in key) and key.isascii():
        return key
    return _toml_string(key)


def render_declaration(declaration: Declaration) -> str:
    """Render a declaration back to secretspec.toml text."""
    lines: List[str] = [
        "[project]",
        f"name = {_toml_string(declaration.project.name)}",
        f"revision = {_toml_string(declaration.project.revision)}",
    ]
    if declaration.extends:
        extends = ", ".join(_toml_string(item) for item in declaration.extends)
        lines.append(f"extends = [{extends}]")

    for profile_name, profile in declaration.profiles.items():
        lines.append("")
        lines.append(f"[profiles.{_toml_key(profile_name)}]")
        for key, spec in profile.secrets.items():
            fields: Dict[str, str] = {}
            if spec.description is not None:
                fields["description"] = _toml_string(spec.description)
            if spec.required is not None:
                fields["required"] = "true" if spec.required else "false"
            if spec.default is not None:
                fields["default"] = _toml_string(spec.default)
            body = ", ".join(f"{name} = {value}" for name, value in fields.items())
            lines.append(f"{_toml_key(key)} = {{ {body} }}" if body else f"{_toml_key(key)} = {{}}")

    return "\n".join(lines) + "\n"
