"""CLI entrypoint for secretspec."""
import sys
import argparse
import getpass
import logging

from .validators import validate_secret_name, validate_secret_value

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    # Log to stderr so stdout stays clean for secret values
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )


def _load_context(args):
    from secretspec.secrets.workflows.secret_operations import SecretContext

    return SecretContext.load(
        path=args.file,
        profile=args.profile,
        provider=args.provider,
    )


def cmd_version(args):
    """Show version information."""
    print(f"secretspec {VERSION}")


def cmd_init(args):
    """Create a new secretspec.toml."""
    from secretspec.secrets.workflows.secret_operations import init_declaration

    path = init_declaration(
        path=args.file,
        project_name=args.name,
        from_dotenv=args.from_dotenv,
        force=args.force,
    )
    print(f"Created {path}")


def cmd_config_init(args):
    """Write the user config with default provider and profile."""
    from secretspec.secrets.domains.config_loader import get_config_path, save_user_config
    from secretspec.secrets.domains.models import UserConfig
    from secretspec.secrets.providers.registry import REGISTRY

    config_path = get_config_path()
    if config_path.exists() and not args.force:
        print(f"Error: Config already exists at {config_path} (use --force to overwrite)", file=sys.stderr)
        sys.exit(1)

    # Fail early on an unknown provider
    REGISTRY.create(args.provider)

    path = save_user_config(UserConfig(provider=args.provider, profile=args.default_profile))
    print(f"Config written to {path}")


def cmd_config_show(args):
    """Show user config and its location."""
    from secretspec.secrets.domains.config_loader import get_config_path, load_user_config

    config_path = get_config_path()
    user_config = load_user_config(config_path)

    if config_path.exists():
        print(f"Config path: {config_path}")
    else:
        print(f"Config path: {config_path} (file not found)")
    print(f"Default provider: {user_config.provider or '(not set)'}")
    print(f"Default profile: {user_config.profile or '(not set)'}")
    for profile, provider in sorted(user_config.profiles.items()):
        print(f"Provider for profile '{profile}': {provider}")


def cmd_config_set(args):
    """Set one user config value."""
    from dataclasses import replace
    from secretspec.secrets.domains.config_loader import load_user_config, save_user_config
    from secretspec.secrets.providers.registry import REGISTRY

    user_config = load_user_config()

    if args.setting == "provider":
        REGISTRY.create(args.value)
        if args.for_profile:
            profiles = dict(user_config.profiles)
            profiles[args.for_profile] = args.value
            user_config = replace(user_config, profiles=profiles)
        else:
            user_config = replace(user_config, provider=args.value)
    else:
        user_config = replace(user_config, profile=args.value)

    path = save_user_config(user_config)
    print(f"Set {args.setting} to '{args.value}' in {path}")


def cmd_providers(args):
    """List available providers."""
    from secretspec.secrets.providers.registry import REGISTRY

    for entry in REGISTRY.entries():
        print(f"{entry.scheme:<12} {entry.description}")
        for example in entry.examples:
            print(f"{'':<12}   e.g. {example}")


def cmd_check(args):
    """Check that all required secrets resolve."""
    from secretspec.secrets.domains.errors import MissingRequiredSecret

    context = _load_context(args)
    print(f"Checking secrets in {context.project} "
          f"(profile: {context.profile}, provider: {context.provider.uri_string})")

    try:
        resolved = context.check()
    except MissingRequiredSecret as e:
        for key in e.keys:
            print(f"  ✗ {key} - required, not set")
        print(f"\n{len(e.keys)} required secret(s) missing: {', '.join(e.keys)}", file=sys.stderr)
        print(f"Set them with: secretspec set <KEY> --profile {context.profile}", file=sys.stderr)
        sys.exit(e.exit_code)

    for key, source in resolved.sources.items():
        marker = "✓" if resolved.secrets[key] is not None else "○"
        print(f"  {marker} {key} ({source.replace('_', ' ')})")
    print("\nAll required secrets are set")


def cmd_get(args):
    """Print one secret value."""
    validate_secret_name(args.secret_name)
    context = _load_context(args)
    value = context.get(args.secret_name)

    if value is None:
        print(f"Error: Secret '{args.secret_name}' is not set "
              f"(profile '{context.profile}', provider '{context.provider.uri_string}')", file=sys.stderr)
        sys.exit(1)

    if args.quiet:
        print(value)
    else:
        print(f"Secret '{args.secret_name}': {value}")


def cmd_set(args):
    """Store one secret value."""
    validate_secret_name(args.secret_name)
    context = _load_context(args)

    value = args.value
    if value is None:
        if sys.stdin.isatty():
            value = getpass.getpass(f"Enter value for {args.secret_name}: ")
        else:
            value = sys.stdin.read().rstrip("\n")
    validate_secret_value(value)

    context.set(args.secret_name, value)
    print(f"Secret '{args.secret_name}' saved to {context.provider.uri_string} (profile: {context.profile})")


def cmd_run(args):
    """Run a command with secrets injected as environment variables."""
    command = list(args.run_command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        print("Error: No command specified. Usage: secretspec run -- <command> [args...]", file=sys.stderr)
        sys.exit(2)

    context = _load_context(args)
    sys.exit(context.run(command))


def cmd_import(args):
    """Copy secrets from another provider into the active provider."""
    context = _load_context(args)
    report = context.import_secrets(args.source, overwrite=args.overwrite)

    for key in report.migrated:
        print(f"  ✓ {key}")
    for key in report.skipped:
        print(f"  ○ {key} (skipped)")
    for key, reason in report.failed.items():
        print(f"  ✗ {key}: {reason}")
    print(f"\nImported {len(report.migrated)}, skipped {len(report.skipped)}, "
          f"failed {len(report.failed)} ({report.source} -> {report.destination})")

    if not report.ok:
        sys.exit(5)


def _add_context_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-f", "--file",
        help="Path to secretspec.toml (searched upward from the current directory if omitted)"
    )
    parser.add_argument(
        "-P", "--profile",
        help="Profile to use (overrides SECRETSPEC_PROFILE and user config)"
    )
    parser.add_argument(
        "-p", "--provider",
        help="Provider URI to use, e.g. keyring://, dotenv://.env (overrides SECRETSPEC_PROVIDER and user config)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secretspec",
        description="Declarative secrets: declare what you need, resolve it from any provider",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0 - Success
  1 - Required secret missing or secret not declared
  2 - Usage error or malformed configuration
  3 - Provider unavailable (authentication, network, missing CLI)
  4 - Provider is read-only or rejected the write
  5 - Import finished with failures
  run propagates the exit status of the command

Environment variables:
  SECRETSPEC_PROFILE  - Active profile (overrides user config)
  SECRETSPEC_PROVIDER - Active provider URI (overrides user config)
  SECRETSPEC_CONFIG   - Path to user config file
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show version information")

    # init
    init_parser = subparsers.add_parser(
        "init",
        help="Create secretspec.toml",
        description="Create a new secretspec.toml, optionally from the keys of an existing .env file"
    )
    init_parser.add_argument("-f", "--file", help="Path of the file to create (default: ./secretspec.toml)")
    init_parser.add_argument("--name", help="Project name (default: directory name)")
    init_parser.add_argument("--from", dest="from_dotenv", metavar="DOTENV",
                             help="Import keys from a .env file as required secrets")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")

    # config
    config_parser = subparsers.add_parser(
        "config",
        help="User configuration management",
        description="Manage the user-level config (default provider and profile)"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_init_parser = config_subparsers.add_parser("init", help="Create user config")
    config_init_parser.add_argument("--provider", default="keyring", help="Default provider URI (default: keyring)")
    config_init_parser.add_argument("--profile", dest="default_profile", default="development",
                                    help="Default profile (default: development)")
    config_init_parser.add_argument("--force", action="store_true", help="Overwrite an existing config")

    config_subparsers.add_parser("show", help="Show user config")

    config_set_parser = config_subparsers.add_parser("set", help="Set a user config value")
    config_set_parser.add_argument("setting", choices=["provider", "profile"])
    config_set_parser.add_argument("value")
    config_set_parser.add_argument("--for-profile", help="Only use this provider for the given profile")

    subparsers.add_parser("providers", help="List available providers")

    # check
    check_parser = subparsers.add_parser("check", help="Check that all required secrets are set")
    _add_context_arguments(check_parser)

    # get
    get_parser = subparsers.add_parser("get", help="Get a secret value")
    get_parser.add_argument("secret_name", help="Name of the secret")
    get_parser.add_argument("-q", "--quiet", action="store_true", help="Output only the secret value")
    _add_context_arguments(get_parser)

    # set
    set_parser = subparsers.add_parser("set", help="Set a secret value")
    set_parser.add_argument("secret_name", help="Name of the secret")
    set_parser.add_argument("value", nargs="?", help="Secret value (read from stdin if omitted)")
    _add_context_arguments(set_parser)

    # run
    run_parser = subparsers.add_parser(
        "run",
        help="Run a command with secrets injected",
        description="Resolve all secrets and run a command with them as environment variables"
    )
    _add_context_arguments(run_parser)
    run_parser.add_argument("run_command", nargs=argparse.REMAINDER, metavar="COMMAND",
                            help="Command to run (after --)")

    # import
    import_parser = subparsers.add_parser(
        "import",
        help="Import secrets from another provider",
        description="Copy every declared secret from SOURCE into the active provider"
    )
    import_parser.add_argument("source", help="Source provider URI")
    import_parser.add_argument("--overwrite", action="store_true",
                               help="Overwrite secrets that already exist in the destination")
    _add_context_arguments(import_parser)

    return parser


COMMANDS = {
    "version": cmd_version,
    "init": cmd_init,
    "providers": cmd_providers,
    "check": cmd_check,
    "get": cmd_get,
    "set": cmd_set,
    "run": cmd_run,
    "import": cmd_import,
}

CONFIG_COMMANDS = {
    "init": cmd_config_init,
    "show": cmd_config_show,
    "set": cmd_config_set,
}


def main(argv=None):
    """Main CLI entrypoint."""
    from secretspec.secrets.domains.errors import SecretSpecError

    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    if args.command == "config":
        handler = CONFIG_COMMANDS.get(args.config_command)
    else:
        handler = COMMANDS.get(args.command)

    if handler is None:
        parser.print_help()
        sys.exit(2)

    try:
        handler(args)
    except SecretSpecError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
