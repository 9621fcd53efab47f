"""
ImageStage v1.0 - Shared Test Fixtures
======================================
In-memory images and upload fakes
"""

import asyncio
import io
import os
import sys
import pytest
from PIL import Image

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import aiohttp
from models import CropArea, DerivedImage, ImageContext, SignedUploadGrant, SourceFile

MIME_BY_FORMAT = {'JPEG': 'image/jpeg', 'PNG': 'image/png', 'WEBP': 'image/webp'}

def encode_image(width, height, fmt='JPEG', color=(200, 30, 30)):
    img = Image.new('RGB', (width, height), color=color)
    buf = io.BytesIO()
    img.save(buf, fmt)
    return buf.getvalue()

def encode_bilevel_png(width, height):
    """Small file with a large pixel count"""
    buf = io.BytesIO()
    Image.new('1', (width, height)).save(buf, 'PNG')
    return buf.getvalue()

class FakeGrantProvider:
    """Issues a fresh grant per call and records the requests"""

    def __init__(self, max_file_size=10 * 1024 * 1024, expires_in=300, fail=False):
        self.calls = []
        self.max_file_size = max_file_size
        self.expires_in = expires_in
        self.fail = fail

    async def __call__(self, file_name, content_type, byte_size):
        self.calls.append((file_name, content_type, byte_size))
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("issuer said no")
        n = len(self.calls)
        return SignedUploadGrant(
            upload_url=f"https://storage.test/put/{n}",
            key=f"uploads/object-{n}.jpg",
            expires_in_seconds=self.expires_in,
            max_file_size=self.max_file_size
        )

class FakeTransport:
    """Records transfers; optionally slow or failing"""

    def __init__(self, delay=0.0, fail=False):
        self.calls = []
        self.delay = delay
        self.fail = fail

    async def __call__(self, upload_url, binary, content_type, timeout_seconds):
        self.calls.append((upload_url, binary, content_type, timeout_seconds))
        await asyncio.sleep(self.delay)
        if self.fail:
            raise aiohttp.ClientConnectionError("connection reset")

# === FIXTURES ===

@pytest.fixture
def image_bytes():
    """Factory: encoded solid-color image of the given size"""
    return encode_image

@pytest.fixture
def make_file():
    """Factory: SourceFile holding an encoded image"""
    def _make(width, height, fmt='JPEG', name=None, color=(200, 30, 30)):
        ext = 'jpg' if fmt == 'JPEG' else fmt.lower()
        return SourceFile(
            name=name or f"photo.{ext}",
            content_type=MIME_BY_FORMAT[fmt],
            data=encode_image(width, height, fmt, color)
        )
    return _make

@pytest.fixture
def venue_context():
    return ImageContext(
        context_id='venues', min_width=1080, min_height=1080, aspect_ratio=1.0,
        quality=0.9, allow_rotation=True, allow_zoom=True, zoom_range=(1.0, 3.0)
    )

@pytest.fixture
def banner_context():
    return ImageContext(context_id='banners', min_width=970, min_height=250, aspect_ratio=970 / 250)

@pytest.fixture
def derivation():
    return DerivedImage(binary=b'jpeg-bytes', width=10, height=10, crop_area=CropArea(0, 0, 10, 10))

@pytest.fixture
def origin_file():
    return SourceFile(name='Моє фото.jpg', content_type='image/jpeg', data=b'original-bytes')

@pytest.fixture
def grant_provider():
    return FakeGrantProvider()

@pytest.fixture
def transport():
    return FakeTransport()
