"""HTTP client for the cover image host (Cloudinary upload API) with circuit breaker and retry.

Requests carry the host's SHA-1 signature over every parameter except ``file``.
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import BinaryIO, Union

import httpx
import structlog
from circuitbreaker import circuit
from starlette.datastructures import UploadFile
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import get_settings
from app.errors import InvalidOperationError, PayloadTooLargeError

logger = structlog.get_logger()
settings = get_settings()

_client: httpx.AsyncClient | None = None

_READ_CHUNK = 64 * 1024


class ImageHostError(Exception):
    pass


@dataclass(frozen=True)
class HostedImage:
    url: str
    public_id: str


@dataclass(frozen=True)
class CoverUpload:
    """An uploaded cover file that passed the type and size checks."""

    filename: str
    content_type: str
    file: BinaryIO
    size: int


async def read_cover(upload: UploadFile) -> CoverUpload:
    """Check that ``upload`` is an image within the size limit.

    Reads the upload in chunks to measure it, then rewinds it so it can be
    streamed to the host.
    """
    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise InvalidOperationError("Cover image must be an image file")

    size = 0
    while True:
        chunk = await upload.read(_READ_CHUNK)
        if not chunk:
            break
        size += len(chunk)
        if size > settings.cover_image_max_bytes:
            raise PayloadTooLargeError(
                f"Cover image exceeds the {settings.cover_image_max_bytes} byte limit"
            )
    if size == 0:
        raise InvalidOperationError("Cover image is empty")

    await upload.seek(0)
    return CoverUpload(
        filename=upload.filename or "cover",
        content_type=content_type,
        file=upload.file,
        size=size,
    )


async def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            base_url=f"{settings.image_host_url.rstrip('/')}/{settings.image_host_cloud_name}",
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    return _client


def _signed(params: dict[str, str]) -> dict[str, str]:
    """Add timestamp, api_key and SHA-1 signature as the upload API expects.

    ``params`` must not include ``file``, which the host leaves out of the signature.
    """
    params = {**params, "timestamp": str(int(time.time()))}
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    signature = hashlib.sha1(f"{to_sign}{settings.image_host_api_secret}".encode()).hexdigest()
    return {**params, "api_key": settings.image_host_api_key or "", "signature": signature}


@circuit(failure_threshold=5, recovery_timeout=60)
@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def upload_image(source: Union[str, CoverUpload]) -> HostedImage:
    """Store a cover on the image host.

    ``source`` is either a remote URL for the host to fetch or an uploaded
    file, which is streamed as multipart.
    """
    if not settings.image_host_configured:
        raise ImageHostError("Image host is not configured")

    client = await _get_client()
    data = _signed({"folder": settings.image_host_folder})
    if isinstance(source, CoverUpload):
        source.file.seek(0)
        response = await client.post(
            "/image/upload",
            data=data,
            files={"file": (source.filename, source.file, source.content_type)},
        )
    else:
        response = await client.post("/image/upload", data={**data, "file": source})
    response.raise_for_status()
    body = response.json()
    return HostedImage(url=body["secure_url"], public_id=body["public_id"])


@circuit(failure_threshold=5, recovery_timeout=60)
@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def delete_image(public_id: str) -> None:
    if not settings.image_host_configured:
        raise ImageHostError("Image host is not configured")

    client = await _get_client()
    response = await client.post("/image/destroy", data=_signed({"public_id": public_id}))
    response.raise_for_status()
    logger.info("cover_image_deleted", public_id=public_id)


async def close_client() -> None:
    global _client
    if _client:
        await _client.aclose()
        _client = None
