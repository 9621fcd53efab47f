"""
ImageStage v1.0 - Crop Engine
=============================
Rotate -> crop -> resample -> encode, plus naming and preview helpers
"""

import base64
import os
import re
import time
import uuid
from typing import Any, Optional, Tuple
from translitua import translit
import config
from image_backend import ImageBackend, PillowBackend
from logger import get_logger
from models import CropArea, DerivedImage, Flip, ImageContext
from validators import sanitize_filename, validate_dimensions, ValidationError

logger = get_logger(__name__)

class CompositeError(Exception):
    """Compositing failed; the previous staged state must stay untouched"""
    pass

# === COMPOSITING ===
async def composite(
    source: Any,
    crop_area: CropArea,
    rotation_degrees: float = 0,
    flip: Optional[Flip] = None,
    quality: float = config.DEFAULT_QUALITY,
    forced_output_size: Optional[Tuple[int, int]] = None,
    backend: Optional[ImageBackend] = None,
    fmt: str = config.OUTPUT_FORMAT
) -> bytes:
    """
    Produce the final encoded binary for a crop of a decoded source

    The source is drawn flipped and rotated onto a surface sized to its
    rotated bounding box, so crop_area is read in the same rotated space
    the user saw. The crop is then resampled to forced_output_size (or
    kept at its own size) and encoded at quality.

    Raises:
        CompositeError: degenerate crop or any backend failure
    """
    backend = backend or PillowBackend()
    flip = flip or Flip()

    if crop_area is None or crop_area.is_degenerate:
        raise CompositeError(f"Crop area is empty: {crop_area}")

    output_size = forced_output_size or (crop_area.width, crop_area.height)
    try:
        validate_dimensions(*output_size)
    except ValidationError as e:
        raise CompositeError(str(e)) from e

    try:
        surface = await backend.composite_to_surface(source, crop_area, rotation_degrees, flip, output_size)
        binary = await backend.encode(surface, fmt, quality)
    except CompositeError:
        raise
    except Exception as e:
        logger.error(f"Composite failed: {e}")
        raise CompositeError(f"Failed to crop image: {e}") from e

    if not binary:
        raise CompositeError("Canvas is empty")
    return binary

async def derive_image(
    source: Any,
    crop_area: CropArea,
    zoom: float,
    rotation_degrees: float,
    context: ImageContext,
    flip: Optional[Flip] = None,
    backend: Optional[ImageBackend] = None
) -> DerivedImage:
    """
    Composite a crop for a context and record how it was produced

    Contexts with an aspect ratio always produce exactly
    min_width x min_height; free-form contexts keep the crop size.
    """
    forced = (context.min_width, context.min_height) if context.aspect_ratio is not None else None
    binary = await composite(
        source, crop_area, rotation_degrees, flip, context.quality,
        forced_output_size=forced, backend=backend, fmt=context.output_format
    )
    width, height = forced or (crop_area.width, crop_area.height)
    logger.info(
        f"Derived {width}x{height} for '{context.context_id}' "
        f"from crop {crop_area.width}x{crop_area.height} (zoom {zoom:.2f}, rot {rotation_degrees})"
    )
    return DerivedImage(
        binary=binary,
        width=width,
        height=height,
        crop_area=crop_area,
        zoom=zoom,
        rotation_degrees=rotation_degrees,
        content_type=config.CONTENT_TYPE_BY_FORMAT[context.output_format]
    )

# === ENCODING ===
def image_to_base64(image_bytes: bytes) -> str:
    return base64.b64encode(image_bytes).decode('utf-8')

def base64_to_bytes(base64_string: str) -> bytes:
    return base64.b64decode(base64_string)

def to_data_url(image_bytes: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{image_to_base64(image_bytes)}"

# === FILENAME GENERATION ===
def _slug(text: str) -> str:
    return re.sub(r'[\s\W_]+', '-', translit(text).lower()).strip('-')

def generate_filename(original_name: str, context_id: str, extension: Optional[str] = None) -> str:
    """
    Unique object name for an upload: <context>/<slug>-<ms>-<random>.<ext>

    The context segment keeps only [a-zA-Z0-9-_].
    """
    safe_name = sanitize_filename(original_name)
    name_only, ext = os.path.splitext(safe_name)
    extension = (extension or ext.lstrip('.') or 'jpg').lower()
    slug = _slug(name_only) or "image"
    module = re.sub(r'[^a-zA-Z0-9\-_]', '', context_id)
    stamp = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:6]
    base = f"{slug}-{stamp}-{suffix}.{extension}"
    return f"{module}/{base}" if module else base

def extension_for(content_type: str) -> str:
    return config.EXTENSION_BY_CONTENT_TYPE.get(content_type, 'bin')

def format_file_size(size_bytes: int) -> str:
    if size_bytes == 0:
        return "0 Bytes"
    size_mb = size_bytes / (1024 * 1024)
    if size_mb >= 1:
        return f"{size_mb:.2f} MB"
    if size_bytes >= 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes} Bytes"
