"""Input validation for CLI arguments."""
import sys

from secretspec.secrets.domains.declaration import SECRET_NAME_PATTERN


def validate_secret_name(name: str) -> None:
    """
    Validate secret name is usable as an environment variable.

    Args:
        name: Secret name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Secret name cannot be empty", file=sys.stderr)
        print("\nSecret names must match: [A-Za-z_][A-Za-z0-9_]*", file=sys.stderr)
        sys.exit(2)

    if not SECRET_NAME_PATTERN.match(name):
        print(f"Error: Invalid secret name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_); must not start with a number", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ DATABASE_URL", file=sys.stderr)
        print("  ✓ api_key", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ api-key (contains hyphen)", file=sys.stderr)
        print("  ✗ 1PASSWORD (starts with a number)", file=sys.stderr)
        sys.exit(2)


def validate_secret_value(value: str) -> None:
    """
    Validate secret value is not empty.

    Args:
        value: Secret value to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if value is None or value == "":
        print("Error: Secret value cannot be empty", file=sys.stderr)
        print("\nTo leave a secret unset, remove it from the provider instead.", file=sys.stderr)
        sys.exit(2)
