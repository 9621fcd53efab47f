"""
ImageStage v1.0 - Upload Commit
===============================
Exchange a staged image for a durable storage key via a signed URL
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import aiohttp
from crop_engine import extension_for, format_file_size, generate_filename
from logger import get_logger
from models import ErrorReason, SignedUploadGrant, StagedEntry

logger = get_logger(__name__)

GrantProvider = Callable[[str, str, int], Awaitable[Union[SignedUploadGrant, Dict[str, Any]]]]
Transport = Callable[[str, bytes, str, float], Awaitable[None]]

class UploadFailed(Exception):
    """Grant request or transfer failed; the staged handle stays intact"""

    reason = ErrorReason.UPLOAD_FAILED

    def __init__(self, message: str, handle: Optional[str] = None):
        super().__init__(message)
        self.handle = handle

# === TRANSPORT ===
async def put_to_signed_url(upload_url: str, binary: bytes, content_type: str, timeout_seconds: float) -> None:
    """
    PUT raw bytes to a signed URL

    The total timeout is the grant's lifetime; there is no retry here.

    Raises:
        UploadFailed: On a non-2xx response
        aiohttp.ClientError, asyncio.TimeoutError: On transport failure
    """
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.put(upload_url, data=binary, headers={'Content-Type': content_type}) as response:
            if response.status >= 300:
                raise UploadFailed(f"Upload failed: {response.status} {response.reason}")

def _coerce_grant(grant: Union[SignedUploadGrant, Dict[str, Any]]) -> SignedUploadGrant:
    if isinstance(grant, SignedUploadGrant):
        return grant
    return SignedUploadGrant.from_dict(grant)

# === COMMIT ===
async def upload_entry(
    entry: StagedEntry,
    grant_provider: GrantProvider,
    transport: Optional[Transport] = None
) -> str:
    """
    Request one grant for a staged entry, transfer its binary and return the key

    Raises:
        UploadFailed: Provider rejection, invalid or undersized grant, transport failure
    """
    transport = transport or put_to_signed_url
    content_type = entry.content_type
    file_name = generate_filename(entry.origin_file.name, entry.context_id, extension_for(content_type))
    byte_size = entry.byte_size

    try:
        grant = _coerce_grant(await grant_provider(file_name, content_type, byte_size))
    except UploadFailed:
        raise
    except Exception as e:
        logger.error(f"Grant request failed for {entry.handle}: {e}")
        raise UploadFailed(f"Could not obtain upload URL: {e}", entry.handle) from e

    if byte_size > grant.max_file_size:
        message = (
            f"File size {format_file_size(byte_size)} exceeds "
            f"{format_file_size(grant.max_file_size)} limit"
        )
        logger.error(f"Grant rejected for {entry.handle}: {message}")
        raise UploadFailed(message, entry.handle)

    logger.info(f"Uploading {entry.handle} as {grant.key} ({format_file_size(byte_size)}, {content_type})")
    try:
        await transport(grant.upload_url, entry.binary, content_type, grant.expires_in_seconds)
    except UploadFailed as e:
        logger.error(f"Upload of {entry.handle} failed: {e}")
        e.handle = entry.handle
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        logger.error(f"Upload of {entry.handle} failed: {e!r}")
        raise UploadFailed(f"Upload failed: {e!r}", entry.handle) from e
    except Exception as e:
        logger.error(f"Transport error uploading {entry.handle}: {e!r}")
        raise UploadFailed(f"Upload failed: {e!r}", entry.handle) from e

    return grant.key

async def commit_upload(
    store,
    handle: str,
    grant_provider: GrantProvider,
    transport: Optional[Transport] = None,
    release: bool = False
) -> str:
    """
    Commit a staged handle and return its durable key

    Idempotent per handle. With release=True the staged binary is dropped
    once the key is known; the store still remembers the key.
    """
    key = await store.commit(handle, grant_provider, transport)
    if release:
        store.discard(handle)
    return key

async def resolve_pending_images(
    store,
    values: Dict[str, Any],
    grant_provider: GrantProvider,
    transport: Optional[Transport] = None
) -> Dict[str, Any]:
    """
    Form-save helper: replace every staged handle in values with its durable key

    Fields are committed one after another; the first failure propagates
    as UploadFailed and fields committed before it keep their entries so a
    retry does not upload them again.
    """
    resolved = dict(values)
    committed = []
    for field_name, value in values.items():
        if isinstance(value, str) and store.is_handle(value):
            resolved[field_name] = await store.commit(value, grant_provider, transport)
            committed.append(value)
    for handle in committed:
        store.discard(handle)
    return resolved
