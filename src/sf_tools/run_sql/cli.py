#!/usr/bin/env python3
"""Run one SQL statement against a Snowflake warehouse and print the result.

Usage:
    run-sql -a XY12345 -u ANALYST --password '...' --sql "SELECT 1"
    run-sql -a XY12345 -u ANALYST --private-key ~/.ssh/rsa_key.p8 --sql "SELECT 1"
    run-sql ... --output json --sql "SHOW WAREHOUSES"
    run-sql ... --output query --sql "SELECT 1"
    run-sql ... --stream --sql "SELECT * FROM big_table"

Environment Variables:
    SNOWFLAKE_ACCOUNT, SNOWFLAKE_USER, SNOWFLAKE_PASSWORD,
    SNOWFLAKE_PRIVATE_KEY_PATH, SNOWFLAKE_PRIVATE_KEY_PASSPHRASE,
    SNOWFLAKE_WAREHOUSE, SNOWFLAKE_DATABASE, SNOWFLAKE_SCHEMA,
    SNOWFLAKE_ROLE, SNOWFLAKE_HOST (loaded from .env if present)
"""

from __future__ import annotations

import asyncio

import click

from . import config
from .config import build_session_config, credential_from_inputs, load_env_file
from .errors import RunSqlError
from .executor import run_statement
from .logging_setup import configure_logging
from .models import OutputMode


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--private-key",
    "private_key",
    type=click.Path(dir_okay=False),
    envvar=config.ENV_PRIVATE_KEY_PATH,
    help="Path to RSA PEM private key.",
)
@click.option(
    "--private-key-passphrase",
    envvar=config.ENV_PRIVATE_KEY_PASSPHRASE,
    help="Passphrase for an encrypted private key.",
)
@click.option(
    "--password",
    envvar=config.ENV_PASSWORD,
    help="Password, if no private key is given.",
)
@click.option(
    "-a",
    "--account-identifier",
    required=True,
    envvar=config.ENV_ACCOUNT,
    help="<account_identifier> in Snowflake format, uppercase.",
)
@click.option("-d", "--database", envvar=config.ENV_DATABASE, help="Database name.")
@click.option("--schema", envvar=config.ENV_SCHEMA, help="Schema name.")
@click.option("-w", "--warehouse", envvar=config.ENV_WAREHOUSE, help="Warehouse.")
@click.option(
    "-u",
    "--username",
    required=True,
    envvar=config.ENV_USER,
    help="User the private key or password belongs to.",
)
@click.option("-r", "--role", envvar=config.ENV_ROLE, help="Role the user will assume.")
@click.option("--sql", required=True, help="SQL statement to execute.")
@click.option(
    "--output",
    type=click.Choice([mode.value for mode in OutputMode]),
    default=OutputMode.COLUMNAR.value,
    show_default=True,
    help="arrow: table, json: JSON rowset, query: raw response record.",
)
@click.option("--host", envvar=config.ENV_HOST, help="Override the warehouse host.")
@click.option(
    "--stream/--no-stream",
    default=False,
    show_default=True,
    help="Stream the response body instead of waiting for it in full.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr.")
def main(
    private_key: str | None,
    private_key_passphrase: str | None,
    password: str | None,
    account_identifier: str,
    database: str | None,
    schema: str | None,
    warehouse: str | None,
    username: str,
    role: str | None,
    sql: str,
    output: str,
    host: str | None,
    stream: bool,
    verbose: bool,
) -> None:
    """Execute one SQL statement and print its result."""
    configure_logging(verbose)

    try:
        credential = credential_from_inputs(private_key, password, private_key_passphrase)
        session_config = build_session_config(
            account_identifier,
            username,
            warehouse=warehouse,
            database=database,
            schema=schema,
            role=role,
            host=host,
        )
        rendered = asyncio.run(
            run_statement(credential, session_config, sql, OutputMode(output), stream)
        )
    except RunSqlError as e:
        raise click.ClickException(str(e)) from e

    click.echo(rendered)


def run() -> None:
    """Console entry point: load .env before click reads the environment."""
    load_env_file()
    main(prog_name="run-sql")


if __name__ == "__main__":  # pragma: no cover
    run()
