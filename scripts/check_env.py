"""Verify that the broker and gateway configuration is intact.

The tool performs two main checks:

1. It loads ``AppSettings`` from the supplied ``.env`` file and flags values
   that would only surface once a request reaches the broker or the gateway:
   half-configured OAuth providers, a DynamoDB store without a table, a
   signed state without any secret, or a malformed ``GATEWAY_BACKENDS`` list.
2. It can record and verify a checksum for the ``.env`` file so unexpected
   edits are detected before the services restart.

Example usages::

    python -m scripts.check_env record --env-file /opt/autostack/.env \
        --hash-file /opt/autostack/.env.sha256

    python -m scripts.check_env verify --env-file /opt/autostack/.env \
        --hash-file /opt/autostack/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from autostack.clients.providers import PROVIDERS
from autostack.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


class ConfigurationProblem(ValueError):
    """Raised when settings load but cannot serve requests."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


def _compute_hash(env_file: Path) -> str:
    """Return the SHA256 checksum for the target environment file."""
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _configuration_problems(settings: AppSettings) -> list[str]:
    problems: list[str] = []
    for provider in PROVIDERS:
        credentials = settings.providers.credentials_for(provider)
        if bool(credentials.client_id) != bool(credentials.client_secret):
            problems.append(
                f"{provider.upper()}_CLIENT_ID and {provider.upper()}_CLIENT_SECRET "
                "must be set together"
            )

    if settings.broker.token_store_backend == "dynamodb" and not settings.broker.dynamodb_table_name:
        problems.append("DYNAMODB_TABLE_NAME is required when TOKEN_STORE_BACKEND=dynamodb")

    security = settings.security
    if security.sign_state and not (security.state_secret or security.token_encryption_secret):
        problems.append(
            "OAUTH_SIGN_STATE requires OAUTH_STATE_SECRET or TOKEN_ENCRYPTION_SECRET"
        )

    for backend in settings.gateway.backends:
        if not backend.url:
            problems.append(f"Gateway backend '{backend.id}' has no url")
        if backend.provider and backend.provider not in PROVIDERS:
            problems.append(
                f"Gateway backend '{backend.id}' references unknown provider "
                f"'{backend.provider}'"
            )
    return problems


def _validate_settings(env_file: Path) -> AppSettings:
    """Ensure the settings can be loaded from the supplied env file."""
    _load_env_file(str(env_file))
    settings = AppSettings(_env_file=str(env_file))  # type: ignore[call-arg]
    problems = _configuration_problems(settings)
    if problems:
        raise ConfigurationProblem(problems)
    return settings


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    """Persist the current checksum to ``hash_file``."""
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    """Compare the current checksum to the recorded baseline."""
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
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
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting the broker or the gateway.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate broker/gateway settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common_arguments(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    for command, help_text, hash_help in (
        ("record", "Validate settings and store the checksum baseline.",
         "Location to write the checksum baseline."),
        ("verify", "Validate settings and compare the checksum with the baseline.",
         "Location of the previously recorded checksum baseline."),
    ):
        subparser = subparsers.add_parser(command, help=help_text)
        add_common_arguments(subparser)
        subparser.add_argument("--hash-file", required=True, type=Path, help=hash_help)

    check_parser = subparsers.add_parser(
        "check",
        help="Validate settings without touching any checksum files.",
    )
    add_common_arguments(check_parser)

    return parser


def _ensure_env_file(env_file: Path) -> None:
    if not env_file.exists():
        raise FileNotFoundError(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool."
        )


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file

    try:
        _ensure_env_file(env_file)
        _validate_settings(env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except ConfigurationProblem as exc:
        print("Settings validation failed:", file=sys.stderr)
        for problem in exc.problems:
            print(f"  - {problem}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    command: str = args.command
    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
    }
    return handlers[command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
