"""Validate deployment configuration for the SMS assistant and detect drift.

Two checks are available:

1. Load ``AppSettings`` from the given ``.env`` file so missing credentials
   (Microsoft, Twilio, OpenRouter) surface before the webhooks start
   failing, and report which optional behaviours are switched on.
2. Record a SHA256 baseline of the ``.env`` file and later compare against
   it, so unexpected edits are caught.

Example usages::

    python -m scripts.check_env record --env-file /srv/sms/.env \
        --hash-file /srv/sms/.env.sha256

    python -m scripts.check_env verify --env-file /srv/sms/.env \
        --hash-file /srv/sms/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import os
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from sms_assistant.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5

REQUIRED_KEYS: tuple[str, ...] = (
    "MICROSOFT_CLIENT_ID",
    "MICROSOFT_CLIENT_SECRET",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "OPENROUTER_API_KEY",
)


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def missing_required_keys(env: dict[str, str] | None = None) -> list[str]:
    """Required keys that are unset or blank in ``env`` (defaults to os.environ)."""
    source = os.environ if env is None else env
    return [key for key in REQUIRED_KEYS if not (source.get(key) or "").strip()]


def _load_settings(env_file: Path) -> AppSettings:
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def describe_settings(settings: AppSettings) -> list[str]:
    """Human readable summary of the optional features a deployment enables."""
    lines = [
        f"environment: {settings.environment}",
        f"public base url: {settings.public_base_url}",
        f"oauth redirect uri: {settings.oauth_redirect_uri}",
        f"storage backend: {settings.storage.backend}",
        f"completion model: {settings.completion.model_name}",
    ]
    if not settings.security.token_encryption_secret:
        lines.append("warning: TOKEN_ENCRYPTION_SECRET unset, falling back to the client secret")
    if not settings.notifications.user_phone_number:
        lines.append("warning: USER_PHONE_NUMBER unset, new mail alerts are disabled")
    if not settings.twilio.enforce_signature:
        if settings.is_production:
            lines.append("note: TWILIO_ENFORCE_SIGNATURE=false is ignored in production")
        else:
            lines.append("warning: Twilio signature failures are only logged")
    if not settings.security.admin_api_key:
        lines.append("warning: ADMIN_API_KEY unset, subscription endpoints are open")
    return lines


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Run the 'record' command first to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate SMS assistant settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_env_file(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env).",
        )

    for name, help_text in (
        ("record", "Validate settings and store the checksum baseline."),
        ("verify", "Validate settings and compare against the checksum baseline."),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        add_env_file(subparser)
        subparser.add_argument("--hash-file", required=True, type=Path)

    check_parser = subparsers.add_parser(
        "check", help="Validate settings and print a configuration summary."
    )
    add_env_file(check_parser)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(f"Environment file {env_file} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        missing = missing_required_keys()
        if missing:
            print(f"Missing required keys: {', '.join(missing)}", file=sys.stderr)
        print(
            "Settings validation failed:\n" f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: _print_summary(settings),
    }
    return handlers[args.command]()


def _print_summary(settings: AppSettings) -> int:
    for line in describe_settings(settings):
        print(line)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
