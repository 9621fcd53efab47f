"""
ImageStage v1.0 - Validation Module
===================================
Candidate image validation and input sanitization
"""

import os
import re
from pathlib import Path
from typing import Any, Optional, Tuple
import config
from image_backend import DecodeError, ImageBackend, PillowBackend
from logger import get_logger
from models import Dimensions, ErrorReason, ImageContext, SourceFile, ValidationResult

logger = get_logger(__name__)

class ValidationError(Exception):
    """Custom validation error"""
    pass

def _rejected(context: ImageContext, reason: ErrorReason, error: str,
              actual: Optional[Dimensions] = None) -> ValidationResult:
    logger.info(f"Rejected image for '{context.context_id}': {reason.value} - {error}")
    return ValidationResult(
        valid=False,
        required_dimensions=context.required_dimensions,
        error=error,
        reason=reason,
        actual_dimensions=actual
    )

async def inspect_image(
    file: SourceFile,
    context: ImageContext,
    cropping: Optional[bool] = None,
    backend: Optional[ImageBackend] = None
) -> Tuple[ValidationResult, Any]:
    """
    Decide whether a candidate file is acceptable for a context

    Checks, each short-circuiting: byte size, MIME type, decodability,
    minimum pixel size. Contexts with a fixed aspect ratio that do not
    allow cropping must receive exactly min_width x min_height, since
    nothing downstream resamples their pixels.

    Args:
        file: Candidate file
        context: Target context
        cropping: Whether the call-site offers interactive cropping
            (defaults to context.cropping_enabled)
        backend: Image backend used for decoding

    Returns:
        (ValidationResult, decoded surface). The surface is None unless the
        file is valid; never raises for a bad file
    """
    backend = backend or PillowBackend()
    if cropping is None:
        cropping = context.cropping_enabled

    # Check file size
    if file.size > context.max_file_size:
        max_mb = round(context.max_file_size / (1024 * 1024))
        return _rejected(context, ErrorReason.FILE_TOO_LARGE, f"File size exceeds {max_mb}MB limit"), None

    # Check type
    if file.content_type not in context.accepted_file_types:
        allowed = ', '.join(t.split('/')[-1].upper() for t in context.accepted_file_types)
        return _rejected(
            context, ErrorReason.UNSUPPORTED_TYPE,
            f"Invalid file type. Please select {allowed} images only."
        ), None

    # Verify image integrity
    try:
        surface = await backend.decode(file.data)
    except DecodeError as e:
        return _rejected(context, ErrorReason.DECODE_ERROR, f"Failed to process image: {e}"), None

    width, height = backend.size(surface)
    actual = Dimensions(width, height)

    if width < context.min_width or height < context.min_height:
        return _rejected(
            context, ErrorReason.TOO_SMALL,
            f"Image must be at least {context.min_width}x{context.min_height} pixels. "
            f"Current: {width}x{height}",
            actual
        ), None

    if context.aspect_ratio is not None and not cropping:
        if width != context.min_width or height != context.min_height:
            return _rejected(
                context, ErrorReason.TOO_SMALL,
                f"Image must be exactly {context.min_width}x{context.min_height}px. "
                f"Found: {width}x{height}px",
                actual
            ), None

    logger.debug(f"Validated {file.name} ({actual}) for '{context.context_id}'")
    result = ValidationResult(valid=True, required_dimensions=context.required_dimensions, actual_dimensions=actual)
    return result, surface

async def validate_image(
    file: SourceFile,
    context: ImageContext,
    cropping: Optional[bool] = None,
    backend: Optional[ImageBackend] = None
) -> ValidationResult:
    """Validation verdict only; see inspect_image"""
    result, _ = await inspect_image(file, context, cropping, backend)
    return result

def validate_cropped_dimensions(dimensions: Dimensions, context: ImageContext) -> ValidationResult:
    """Check that a cropped output still meets the context minimums"""
    if dimensions.width < context.min_width or dimensions.height < context.min_height:
        return _rejected(
            context, ErrorReason.TOO_SMALL,
            f"Cropped area must be at least {context.min_width}x{context.min_height} pixels. "
            f"Current: {dimensions.width}x{dimensions.height}",
            dimensions
        )
    return ValidationResult(valid=True, required_dimensions=context.required_dimensions, actual_dimensions=dimensions)

_UNSAFE_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')

def sanitize_filename(filename: str, fallback: str = "unnamed.jpg") -> str:
    """Base name of an uploaded file with path parts and unsafe characters stripped"""
    base = Path((filename or '').replace('\\', '/')).name
    base = _UNSAFE_CHARS.sub('', base).replace(' ', '_')

    stem, ext = os.path.splitext(base)
    overflow = len(base) - config.MAX_FILENAME_LENGTH
    if overflow > 0:
        base = stem[:len(stem) - overflow] + ext

    return base if base.strip('.') else fallback

def validate_dimensions(width: int, height: int) -> bool:
    """
    Validate output dimensions

    Raises:
        ValidationError: If dimensions are invalid
    """
    if width <= 0 or height <= 0:
        raise ValidationError(f"Invalid dimensions: {width}x{height}")
    return True
