"""HTTP helpers shared by the cloud recognition backends.

Maps transport failures and HTTP status codes onto the recognition error
classes the retry policy understands.
"""

import base64
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import numpy as np

from doctrack_ocr.errors import ClientError, NetworkFailure, RateLimited, ServerError
from doctrack_ocr.preprocessing.image_io import encode_image
from doctrack_ocr.utils.logger import get_logger

logger = get_logger(__name__)


def create_async_client(timeout: float = 30.0) -> httpx.AsyncClient:
    """Create an httpx AsyncClient for the cloud backends."""
    return httpx.AsyncClient(timeout=timeout)


@asynccontextmanager
async def client_scope(
    client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the shared client, or a short-lived one when none is shared."""
    if client is not None:
        yield client
        return
    async with create_async_client(timeout) as owned:
        yield owned


def image_to_base64(image: np.ndarray) -> str:
    """PNG-encode an image and return it as base64 text."""
    return base64.b64encode(encode_image(image, fmt="PNG")).decode("ascii")


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a ``Retry-After`` header, or ``None`` if absent or a date."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        message = response.json().get("error", {}).get("message")
    except (ValueError, AttributeError):
        message = None
    return message or response.reason_phrase or f"HTTP {response.status_code}"


def raise_for_recognition_status(response: httpx.Response, service: str) -> None:
    """Raise the recognition error matching a non-2xx response.

    Args:
        response: Response from a backend.
        service: Backend name used in error messages.

    Raises:
        RateLimited: On 429, with ``retry_after`` from the header.
        ClientError: On any other 4xx.
        ServerError: On 5xx.
    """
    status = response.status_code
    if status < 400:
        return

    message = f"{service} API error: {_error_message(response)}"
    if status == 429:
        raise RateLimited(
            retry_after=parse_retry_after(response.headers.get("Retry-After"))
        )
    if status < 500:
        raise ClientError(status, message)
    raise ServerError(status, message)


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict,
    service: str,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
) -> dict:
    """POST a JSON body and return the decoded JSON response.

    Args:
        client: Shared async client.
        url: Endpoint URL.
        payload: JSON request body.
        service: Backend name used in error messages.
        headers: Extra request headers.
        params: Query string parameters.

    Returns:
        Decoded JSON object.

    Raises:
        NetworkFailure: On connection errors and timeouts.
        ServerError: On an undecodable body.
        RecognitionError: On a non-2xx status, per
            :func:`raise_for_recognition_status`.
    """
    try:
        response = await client.post(url, json=payload, headers=headers, params=params)
    except httpx.TransportError as exc:
        raise NetworkFailure(f"{service} request failed: {exc}") from exc

    logger.debug("%s responded with status %d", service, response.status_code)
    raise_for_recognition_status(response, service)

    try:
        return response.json()
    except ValueError as exc:
        raise ServerError(
            response.status_code, f"{service} returned an invalid response"
        ) from exc
