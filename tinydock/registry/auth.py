# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Anonymous pull-token exchange with the Docker Hub auth service."""

from __future__ import annotations

import logging

import httpx

from tinydock.errors import AuthError, TransportError
from tinydock.logging import SecretFilter
from tinydock.registry._transport import get_json
from tinydock.registry.types import TokenResponse


logger = logging.getLogger(__name__)

AUTH_URL = (
    "https://auth.docker.io/token"
    "?service=registry.docker.io&scope=repository:library/{name}:pull"
)


def fetch_token(client: httpx.Client, name: str) -> str:
    """Obtain an anonymous bearer token with pull scope for a repository.

    The token is registered with the logging secret filter before it is
    returned.

    Args:
        client: Shared HTTP client.
        name: Repository name under ``library/``.

    Returns:
        Bearer token string.

    Raises:
        AuthError: If the token request fails or returns no token.
    """
    url = AUTH_URL.format(name=name)
    try:
        response = get_json(client, url, TokenResponse.from_json)
    except TransportError as e:
        raise AuthError(f"authorize: {e}") from e

    if not response.token:
        raise AuthError("authorize: empty token")

    SecretFilter.register_secret(response.token)
    logger.info("Obtained pull token for library/%s", name)
    return response.token


def auth_headers(token: str) -> dict[str, str]:
    """Return the Authorization header for registry calls."""
    return {"Authorization": f"Bearer {token}"}
