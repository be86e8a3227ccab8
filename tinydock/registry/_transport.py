# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""GET-and-decode primitive shared by every JSON registry call."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import httpx

from tinydock.errors import RegistryError, TransportError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def open_client(timeout: float | None = None) -> httpx.Client:
    """Create the HTTP client shared by all registry calls of one run.

    Redirects are followed because blob downloads are served from a CDN
    behind a redirect.

    Args:
        timeout: Request timeout in seconds, or None for no timeout.

    Returns:
        A new ``httpx.Client``.  The caller closes it.
    """
    return httpx.Client(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
    )


def check_status(response: httpx.Response) -> None:
    """Raise RegistryError unless the response status is 200.

    Args:
        response: Registry response.

    Raises:
        RegistryError: On any status other than 200.
    """
    if response.status_code != httpx.codes.OK:
        url = str(response.request.url)
        raise RegistryError(
            f"unexpected status {response.status_code} from {url}",
            status_code=response.status_code,
            url=url,
        )


def get_json(
    client: httpx.Client,
    url: str,
    shape: Callable[[Any], T],
    headers: Mapping[str, str] | None = None,
) -> T:
    """GET a URL and decode its JSON body into ``shape``.

    Args:
        client: Shared HTTP client.
        url: URL to fetch.
        shape: Callable building the result from the decoded JSON
            (typically a ``from_json`` classmethod).
        headers: Extra request headers.

    Returns:
        The decoded value.

    Raises:
        RegistryError: On a non-200 status.
        TransportError: On request construction, network or decode failure.
    """
    logger.debug("GET %s", url)
    try:
        response = client.get(url, headers=dict(headers or {}))
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
        raise TransportError(f"new request: {e}") from e
    except httpx.HTTPError as e:
        raise TransportError(f"do request: {e}") from e

    check_status(response)

    try:
        return shape(response.json())
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise TransportError(f"decode: {e!r}") from e
