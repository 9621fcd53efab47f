"""
ImageStage v1.0 - Unit Tests
============================
Test suite for crop engine and image backend
"""

import asyncio
import io
import os
import re
import sys
import pytest
from PIL import Image

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import crop_engine as engine
from image_backend import DecodeError, PillowBackend
from models import CropArea, Flip, ImageContext

def run(coro):
    return asyncio.run(coro)

def decode(binary):
    return Image.open(io.BytesIO(binary))

@pytest.fixture
def backend():
    return PillowBackend()

@pytest.fixture
def two_tone(backend):
    """200x100 source: left half red, right half blue"""
    img = Image.new('RGB', (200, 100), (255, 0, 0))
    img.paste((0, 0, 255), (100, 0, 200, 100))
    buf = io.BytesIO()
    img.save(buf, 'PNG')
    return run(backend.decode(buf.getvalue()))

class ExplodingBackend(PillowBackend):
    async def composite_to_surface(self, source, crop_area, rotation_degrees, flip, output_size):
        raise RuntimeError("canvas context lost")

class BlankBackend(PillowBackend):
    async def encode(self, surface, fmt, quality):
        return b''

# === BACKEND ===

def test_decode_rejects_garbage(backend):
    with pytest.raises(DecodeError):
        run(backend.decode(b'not an image'))

def test_decode_returns_natural_size(backend, image_bytes):
    surface = run(backend.decode(image_bytes(640, 480)))
    assert backend.size(surface) == (640, 480)

# === COMPOSITE ===

def test_composite_keeps_crop_size(two_tone):
    binary = run(engine.composite(two_tone, CropArea(0, 0, 100, 50)))
    out = decode(binary)
    assert out.format == 'JPEG'
    assert out.size == (100, 50)

def test_composite_forced_output_size(two_tone):
    binary = run(engine.composite(two_tone, CropArea(10, 10, 60, 60), forced_output_size=(30, 30)))
    assert decode(binary).size == (30, 30)

def test_composite_rotation_swaps_axes(two_tone):
    binary = run(engine.composite(two_tone, CropArea(0, 0, 100, 200), rotation_degrees=90, fmt='PNG'))
    out = decode(binary).convert('RGB')
    assert out.size == (100, 200)
    # Clockwise quarter turn puts the red (left) half on top
    assert out.getpixel((50, 20)) == (255, 0, 0)
    assert out.getpixel((50, 180)) == (0, 0, 255)

def test_composite_horizontal_flip(two_tone):
    binary = run(engine.composite(two_tone, CropArea(0, 0, 20, 20), flip=Flip(horizontal=True), fmt='PNG'))
    assert decode(binary).convert('RGB').getpixel((10, 10)) == (0, 0, 255)

def test_composite_crop_partly_outside(two_tone):
    binary = run(engine.composite(two_tone, CropArea(-10, -10, 50, 50)))
    assert decode(binary).size == (50, 50)

def test_composite_degenerate_crop(two_tone):
    with pytest.raises(engine.CompositeError):
        run(engine.composite(two_tone, CropArea(0, 0, 0, 10)))

def test_composite_backend_failure(two_tone):
    with pytest.raises(engine.CompositeError, match="canvas context lost"):
        run(engine.composite(two_tone, CropArea(0, 0, 10, 10), backend=ExplodingBackend()))

def test_composite_empty_output(two_tone):
    with pytest.raises(engine.CompositeError, match="empty"):
        run(engine.composite(two_tone, CropArea(0, 0, 10, 10), backend=BlankBackend()))

# === DERIVE ===

def test_derive_square_venue_from_landscape(backend, image_bytes, venue_context):
    source = run(backend.decode(image_bytes(2000, 1500)))
    crop = CropArea(250, 0, 1500, 1500)
    derived = run(engine.derive_image(source, crop, 1.0, 0, venue_context, backend=backend))

    assert (derived.width, derived.height) == (1080, 1080)
    assert derived.crop_area == crop
    assert derived.zoom == 1.0
    assert derived.content_type == 'image/jpeg'
    assert decode(derived.binary).size == (1080, 1080)

def test_derive_forces_size_for_any_crop(backend, image_bytes, venue_context):
    source = run(backend.decode(image_bytes(2000, 1500)))
    derived = run(engine.derive_image(source, CropArea(700, 500, 500, 500), 3.0, 90, venue_context, backend=backend))
    assert decode(derived.binary).size == (1080, 1080)
    assert derived.rotation_degrees == 90

def test_derive_free_form_keeps_crop_size(backend, image_bytes):
    context = ImageContext(context_id='dedicated', min_width=700, min_height=100,
                           quality=1.0, allow_zoom=True, output_format='WEBP')
    source = run(backend.decode(image_bytes(1000, 500)))
    derived = run(engine.derive_image(source, CropArea(0, 0, 800, 200), 1.25, 0, context, backend=backend))
    assert (derived.width, derived.height) == (800, 200)
    assert derived.content_type == 'image/webp'
    assert decode(derived.binary).format == 'WEBP'

# === HELPERS ===

def test_to_data_url():
    url = engine.to_data_url(b'\x89PNG', 'image/png')
    assert url == 'data:image/png;base64,iVBORw=='
    assert engine.base64_to_bytes(url.split(',', 1)[1]) == b'\x89PNG'

def test_generate_filename_transliteration():
    """Test transliteration in filename"""
    result = engine.generate_filename("Моє фото.JPG", "banners")
    assert re.match(r'^banners/[a-z0-9-]+-\d{13}-[0-9a-f]{6}\.jpg$', result)
    assert 'foto' in result

def test_generate_filename_extension_and_context():
    result = engine.generate_filename("photo.png", "bad/ctx!", extension='jpg')
    assert result.startswith("badctx/photo-")
    assert result.endswith(".jpg")

def test_generate_filename_unique():
    names = {engine.generate_filename("a.jpg", "venues") for _ in range(50)}
    assert len(names) == 50

def test_format_file_size():
    assert engine.format_file_size(0) == "0 Bytes"
    assert engine.format_file_size(512) == "512 Bytes"
    assert engine.format_file_size(1536) == "1.5 KB"
    assert engine.format_file_size(2 * 1024 * 1024) == "2.00 MB"
