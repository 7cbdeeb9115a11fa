"""Selection of the authentication strategy for a session."""

from __future__ import annotations

import logging

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .errors import ConfigurationError
from .models import CertificateCredential, Credential, PasswordCredential, SessionConfig
from .session import WarehouseSession

logger = logging.getLogger(__name__)


def parse_private_key(pem: bytes, passphrase: bytes | None = None) -> rsa.RSAPrivateKey:
    """Parse PEM key material into an RSA private key."""
    try:
        key = serialization.load_pem_private_key(pem, password=passphrase)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ConfigurationError(f"Private key could not be parsed: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError(
            f"Private key must be an RSA key, got {type(key).__name__}"
        )
    return key


def build_session(
    credential: Credential,
    config: SessionConfig,
    *,
    client: httpx.AsyncClient | None = None,
) -> WarehouseSession:
    """Construct an unauthenticated session for exactly one credential variant."""
    if isinstance(credential, CertificateCredential):
        key = parse_private_key(credential.private_key_pem, credential.passphrase)
        session = WarehouseSession(config, private_key=key, client=client)
    elif isinstance(credential, PasswordCredential):
        session = WarehouseSession(config, password=credential.password, client=client)
    else:
        raise ConfigurationError(
            "Either a private key or a password credential must be supplied, "
            f"got {type(credential).__name__}"
        )
    logger.debug("Selected %s authentication", type(credential).__name__)
    return session.with_host(config.host)


async def select_session(
    credential: Credential,
    config: SessionConfig,
    *,
    client: httpx.AsyncClient | None = None,
) -> WarehouseSession:
    """Build and log in the session for ``credential``.

    Configuration problems are raised before any request is made; a failed
    login raises AuthenticationError and is not retried.
    """
    session = build_session(credential, config, client=client)
    try:
        await session.login()
    except BaseException:
        await session.close()
        raise
    return session
