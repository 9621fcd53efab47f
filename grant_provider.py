"""
ImageStage v1.0 - Grant Provider
================================
HTTP client for an external signed-upload-URL issuer
"""

from typing import Dict, Optional
import aiohttp
import config
from logger import get_logger
from models import SignedUploadGrant

logger = get_logger(__name__)

class GrantRequestError(Exception):
    """The issuer refused or could not be reached"""
    pass

class HttpGrantProvider:
    """
    Grant provider that POSTs {fileName, contentType, fileSize} to an issuer

    The issuer answers with the camelCase grant payload
    (uploadUrl, key, expiresIn, maxFileSize, ...). Instances are
    awaitable callables matching the grant provider signature.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        extra_fields: Optional[Dict[str, str]] = None,
        timeout: float = config.GRANT_REQUEST_TIMEOUT
    ):
        self.endpoint = endpoint or config.GRANT_ENDPOINT
        if not self.endpoint:
            raise ValueError("Grant endpoint is not configured (set IMAGESTAGE_GRANT_URL)")
        self.headers = headers or {}
        self.extra_fields = extra_fields or {}
        self.timeout = timeout

    async def __call__(self, file_name: str, content_type: str, byte_size: int) -> SignedUploadGrant:
        payload = {
            'fileName': file_name,
            'contentType': content_type,
            'fileSize': byte_size,
            **self.extra_fields
        }
        logger.debug(f"Requesting grant for {file_name} ({byte_size} bytes)")
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=self.headers) as session:
                async with session.post(self.endpoint, json=payload) as response:
                    if response.status >= 300:
                        text = await response.text()
                        raise GrantRequestError(f"Issuer returned {response.status}: {text[:200]}")
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise GrantRequestError(f"Issuer unreachable: {e}") from e

        try:
            return SignedUploadGrant.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise GrantRequestError(f"Malformed grant: {e}") from e
