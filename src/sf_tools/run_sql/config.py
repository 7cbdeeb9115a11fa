"""Configuration for run-sql.

Connection settings come from command-line flags, falling back to
``SNOWFLAKE_*`` environment variables; a ``.env`` file in the working
directory is loaded first so it can supply those variables.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import CertificateCredential, Credential, PasswordCredential, SessionConfig

CLIENT_APP_ID = "run-sql"
CLIENT_APP_VERSION = "0.3.0"

REQUEST_TIMEOUT = 600  # seconds, long-running warehouse queries
POLL_INTERVAL = 1.0  # seconds between in-progress result polls
JWT_LIFETIME = 60  # seconds

# Environment variables read by the CLI options
ENV_ACCOUNT = "SNOWFLAKE_ACCOUNT"
ENV_USER = "SNOWFLAKE_USER"
ENV_PASSWORD = "SNOWFLAKE_PASSWORD"
ENV_PRIVATE_KEY_PATH = "SNOWFLAKE_PRIVATE_KEY_PATH"
ENV_PRIVATE_KEY_PASSPHRASE = "SNOWFLAKE_PRIVATE_KEY_PASSPHRASE"
ENV_WAREHOUSE = "SNOWFLAKE_WAREHOUSE"
ENV_DATABASE = "SNOWFLAKE_DATABASE"
ENV_SCHEMA = "SNOWFLAKE_SCHEMA"
ENV_ROLE = "SNOWFLAKE_ROLE"
ENV_HOST = "SNOWFLAKE_HOST"
ENV_LOG_LEVEL = "RUN_SQL_LOG_LEVEL"


def load_env_file(path: Path | None = None) -> bool:
    """Load a .env file without overriding variables already set.

    Returns True if a file was found and loaded.
    """
    env_path = path or Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(env_path, override=False)


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_session_config(
    account_identifier: str | None,
    username: str | None,
    warehouse: str | None = None,
    database: str | None = None,
    schema: str | None = None,
    role: str | None = None,
    host: str | None = None,
) -> SessionConfig:
    """Validate connection settings and freeze them into a SessionConfig."""
    account = _blank_to_none(account_identifier)
    user = _blank_to_none(username)
    if not account:
        raise ConfigurationError("An account identifier is required")
    if not user:
        raise ConfigurationError("A username is required")

    return SessionConfig(
        account_identifier=account,
        username=user,
        warehouse=_blank_to_none(warehouse),
        database=_blank_to_none(database),
        schema=_blank_to_none(schema),
        role=_blank_to_none(role),
        host=_blank_to_none(host),
    )


def read_private_key_file(path: str | os.PathLike[str]) -> bytes:
    """Read PEM private key material from disk."""
    key_path = Path(path).expanduser()
    try:
        return key_path.read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Cannot read private key file '{key_path}': {e}") from e


def credential_from_inputs(
    private_key_path: str | os.PathLike[str] | None,
    password: str | None,
    passphrase: str | None = None,
) -> Credential:
    """Build the single credential variant from the raw inputs.

    Exactly one of ``private_key_path`` and ``password`` must be given.
    """
    key_path = private_key_path if private_key_path not in (None, "") else None
    secret = password if password not in (None, "") else None

    if key_path is not None and secret is not None:
        raise ConfigurationError(
            "Both a private key and a password were given; use exactly one"
        )
    if key_path is None and secret is None:
        raise ConfigurationError("Either a private key path or a password must be set")

    if key_path is not None:
        return CertificateCredential(
            private_key_pem=read_private_key_file(key_path),
            passphrase=passphrase.encode() if passphrase else None,
        )
    return PasswordCredential(password=secret)
