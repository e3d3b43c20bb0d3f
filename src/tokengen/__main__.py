"""CLI entry point for tokengen."""

import argparse
import logging
import os
import shlex
import subprocess
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

from .acquisition.orchestrator import AcquisitionOrchestrator
from .auth.device_flow import DeviceCodeFlowController
from .auth.launcher import DesktopLauncher
from .auth.msal_auth import MsalIdentityProviderClient
from .auth.token_cache import open_token_cache
from .config import CONFIG_TEMPLATE, AppSettings, ProfilesConfig, load_settings
from .models.request import ProfileType, TokenTypePreference
from .output.formatter import OutputFormat, format_token
from .profiles.resolver import ProfileOverrides, ProfileResolver
from .utils.clock import SystemClock
from .utils.exceptions import ConfigError, TokenGenError
from .utils.logging import setup_logging, verbosity_to_level
from .utils.ssl_utils import init_ssl

logger = logging.getLogger("tokengen")


def _choice(parse, label):
    """Wrap an enum parser as an argparse type."""

    def convert(value: str):
        try:
            return parse(value)
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e)) from e

    convert.__name__ = label
    return convert


EXIT_CODES_HELP = """\
exit codes:
  0    token written to stdout
  1    unexpected error
  2    configuration or usage error
  3    identity provider unavailable
  4    client credentials rejected
  5    refresh token rejected
  6    device code expired
  7    sign-in declined or cancelled
  8    requested token type not returned
  130  interrupted
"""


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors as ConfigError so they share its exit code."""

    def error(self, message):
        self.print_usage(sys.stderr)
        raise ConfigError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="tokengen",
        description="Generate Azure AD bearer tokens for shell pipelines",
        epilog=EXIT_CODES_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-p", "--profile", help="Profile name from the config file")
    parser.add_argument(
        "-T",
        "--type",
        dest="profile_type",
        type=_choice(ProfileType.parse, "profile type"),
        help="Profile type: App (client credentials) or User (device code)",
    )
    parser.add_argument("-c", "--client-id", help="Application (client) id")
    parser.add_argument("-s", "--secret", help="Client secret (App profiles)")
    parser.add_argument("-t", "--tenant", help="Tenant id or domain")
    parser.add_argument("-a", "--authority", help="Authority host URL")
    parser.add_argument("-r", "--resource", help="Resource URI (App profiles)")
    parser.add_argument("-S", "--scope", help="Space separated scopes (User profiles)")
    parser.add_argument(
        "-k",
        "--token-type",
        type=_choice(TokenTypePreference, "token type"),
        help="Token preference: i (id), a (access), ia (id, else access), ai (access, else id)",
    )
    parser.add_argument(
        "-f",
        "--format",
        type=_choice(OutputFormat.parse, "format"),
        default=OutputFormat.HEADER,
        help="Output format: header (default) or raw",
    )
    parser.add_argument("--config", type=Path, help="Profile file (overrides settings)")
    parser.add_argument("--cache-path", type=Path, help="Token cache file (overrides settings)")
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore cached tokens and acquire a new one",
    )
    parser.add_argument("--no-browser", action="store_true", help="Do not open a browser")
    parser.add_argument(
        "--no-clipboard", action="store_true", help="Do not copy the device code"
    )
    parser.add_argument(
        "--list-profiles", action="store_true", help="List configured profiles"
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Remove cached tokens (only the selected profile's when --profile is given)",
    )
    parser.add_argument(
        "--edit-config", action="store_true", help="Open the profile file in an editor"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Verbose output on stderr (repeat for debug)",
    )
    return parser


def _overrides(args: argparse.Namespace) -> ProfileOverrides:
    return ProfileOverrides(
        profile_type=args.profile_type,
        client_id=args.client_id,
        secret=args.secret,
        tenant=args.tenant,
        authority=args.authority,
        resource=args.resource,
        scope=args.scope,
        token_type=args.token_type,
    )


def _edit_config(config_path: Path) -> int:
    """Open the profile file in the user's editor, creating it if needed."""
    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(CONFIG_TEMPLATE, encoding="utf-8")
        logger.info(f"Created config template at {config_path}")

    default_editor = "notepad" if sys.platform == "win32" else "vi"
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or default_editor
    try:
        return subprocess.call([*shlex.split(editor), str(config_path)])
    except OSError as e:
        print(f"ERROR: Unable to start editor '{editor}': {e}", file=sys.stderr)
        return 1


def _list_profiles(config: ProfilesConfig) -> int:
    for name, profile in sorted(config.profiles.items()):
        marker = "*" if name == config.default_profile else " "
        kind = profile.type.value if profile.type else "-"
        print(f"{marker} {name}\t{kind}")
    return 0


def _clear_cache(
    args: argparse.Namespace,
    resolver: ProfileResolver,
    cache_path: Path,
    settings: AppSettings,
) -> int:
    with open_token_cache(cache_path, settings.cache_encrypted) as cache:
        if args.profile:
            key = resolver.resolve(args.profile, _overrides(args)).cache_key
            removed = cache.remove(key)
            logger.info(f"Cached token for '{args.profile}' {'removed' if removed else 'not found'}")
        else:
            count = cache.clear()
            logger.info(f"Token cache cleared ({count} record(s))")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()

    try:
        args = parser.parse_args(argv)
        settings = load_settings()
        setup_logging(
            level=verbosity_to_level(args.verbose, settings.log_level),
            log_file=settings.log_file,
        )

        config_path = args.config or settings.config_path
        cache_path = args.cache_path or settings.cache_path

        if args.edit_config:
            return _edit_config(config_path)

        profiles = ProfilesConfig.load(config_path)
        if args.list_profiles:
            return _list_profiles(profiles)

        resolver = ProfileResolver(profiles)
        if args.clear_cache:
            return _clear_cache(args, resolver, cache_path, settings)

        request = resolver.resolve(args.profile, _overrides(args))

        # Before the first HTTPS connection
        init_ssl(settings.use_system_truststore)

        clock = SystemClock()
        client = MsalIdentityProviderClient(clock=clock)
        launcher = DesktopLauncher(
            clipboard=settings.copy_to_clipboard and not args.no_clipboard,
            browser=settings.open_browser and not args.no_browser,
        )

        with open_token_cache(cache_path, settings.cache_encrypted, clock=clock) as cache:
            orchestrator = AcquisitionOrchestrator(
                cache=cache,
                client=client,
                device_flow=DeviceCodeFlowController(client, clock, launcher),
                clock=clock,
                skew_margin=timedelta(seconds=settings.skew_margin_seconds),
                refresh_backoff=settings.refresh_backoff_seconds,
            )
            token = orchestrator.acquire(request, force_refresh=args.no_cache)

        logger.info(f"Returning {token.kind.value} from {token.source.value}")
        sys.stdout.write(format_token(token.value, args.format))
        sys.stdout.flush()
        return 0

    except TokenGenError as e:
        logger.debug("Token acquisition failed", exc_info=True)
        print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("ERROR: Interrupted", file=sys.stderr)
        return 130
    except Exception as e:
        logger.debug("Unexpected error", exc_info=True)
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
