"""
ImageStage v1.0 - Image Backend
===============================
Decode / composite / encode capability behind a small interface
"""

import asyncio
import io
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple
from PIL import Image, ImageOps, UnidentifiedImageError
import config
from geometry import rotated_canvas_size
from logger import get_logger
from models import CropArea, Flip

logger = get_logger(__name__)


class DecodeError(Exception):
    """Bytes could not be decoded as an image"""
    pass


class ImageBackend(ABC):
    """
    Capabilities the pipeline needs from an imaging library

    Surfaces are opaque to callers; only the backend that produced a
    surface may draw or encode it.
    """

    @abstractmethod
    async def decode(self, data: bytes) -> Any:
        """Decode bytes into a source surface, raise DecodeError on failure"""

    @abstractmethod
    def size(self, surface: Any) -> Tuple[int, int]:
        """Natural (width, height) of a surface"""

    @abstractmethod
    async def composite_to_surface(
        self,
        source: Any,
        crop_area: CropArea,
        rotation_degrees: float,
        flip: Flip,
        output_size: Tuple[int, int]
    ) -> Any:
        """Rotate/flip source, cut crop_area and resample it to output_size"""

    @abstractmethod
    async def encode(self, surface: Any, fmt: str, quality: float) -> bytes:
        """Encode a surface; quality is 0-1"""


class PillowBackend(ImageBackend):
    """Pillow implementation, CPU work runs off the event loop"""

    async def decode(self, data: bytes) -> Image.Image:
        return await asyncio.to_thread(self._decode, data)

    def size(self, surface: Image.Image) -> Tuple[int, int]:
        return surface.size

    async def composite_to_surface(self, source, crop_area, rotation_degrees, flip, output_size):
        return await asyncio.to_thread(
            self._composite, source, crop_area, rotation_degrees, flip, output_size
        )

    async def encode(self, surface: Image.Image, fmt: str, quality: float) -> bytes:
        return await asyncio.to_thread(_export_image, surface, fmt, quality)

    # === SYNC WORKERS ===
    @staticmethod
    def _decode(data: bytes) -> Image.Image:
        if not data:
            raise DecodeError("Image data is empty")
        try:
            with Image.open(io.BytesIO(data)) as img:
                _check_pixel_count(img.size)
                img.verify()

            # Reopen after verify (verify() invalidates the image)
            with Image.open(io.BytesIO(data)) as img_temp:
                img = ImageOps.exif_transpose(img_temp)
                img.load()
                return img.convert('RGBA')
        except Image.DecompressionBombError as e:
            raise DecodeError(f"Image is too large to process: {e}") from e
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            raise DecodeError(f"Corrupted or invalid image: {e}") from e

    @staticmethod
    def _composite(
        source: Image.Image,
        crop_area: CropArea,
        rotation_degrees: float,
        flip: Flip,
        output_size: Tuple[int, int]
    ) -> Image.Image:
        img = source if source.mode == 'RGBA' else source.convert('RGBA')
        if flip.horizontal:
            img = ImageOps.mirror(img)
        if flip.vertical:
            img = ImageOps.flip(img)

        # Intermediate surface sized to the rotated bounding box, image centered
        box_w, box_h = rotated_canvas_size(img.width, img.height, rotation_degrees)
        if rotation_degrees % 360 != 0:
            # PIL rotates counter-clockwise, the cropper clockwise
            img = img.rotate(-rotation_degrees, expand=True, resample=Image.Resampling.BICUBIC)
        surface = Image.new('RGBA', (box_w, box_h), (0, 0, 0, 0))
        surface.paste(img, ((box_w - img.width) // 2, (box_h - img.height) // 2))

        # Crop and resample in one step; resize(box=) rejects boxes outside the surface
        box = crop_area.as_box()
        if box[0] >= 0 and box[1] >= 0 and box[2] <= box_w and box[3] <= box_h:
            result = surface.resize(output_size, Image.Resampling.LANCZOS, box=box)
        else:
            result = surface.crop(box).resize(output_size, Image.Resampling.LANCZOS)
        logger.debug(
            f"Composited {source.width}x{source.height} rot={rotation_degrees} "
            f"crop={crop_area} -> {output_size[0]}x{output_size[1]}"
        )
        return result


def _check_pixel_count(size: Tuple[int, int]) -> None:
    width, height = size
    if width * height > config.MAX_IMAGE_PIXELS:
        raise DecodeError(
            f"Image is too large to process: {width}x{height} exceeds {config.MAX_IMAGE_PIXELS} pixels"
        )


def _export_image(img: Image.Image, fmt: str, quality: float, exif: Optional[bytes] = None) -> bytes:
    fmt = fmt.upper()
    if fmt not in config.SUPPORTED_OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format: {fmt}")

    qual = max(1, min(100, int(round(quality * 100))))
    if fmt == "JPEG" and img.mode != "RGB":
        bg = Image.new("RGB", img.size, (255, 255, 255))
        if img.mode == "RGBA":
            bg.paste(img, mask=img.split()[3])
        else:
            bg.paste(img.convert("RGB"))
        img = bg
    buf = io.BytesIO()
    sk = {"format": fmt}
    if exif and fmt in ["JPEG", "WEBP"]: sk['exif'] = exif
    if fmt == "JPEG": sk.update({"quality": qual, "optimize": True, "subsampling": 0})
    elif fmt == "WEBP": sk.update({"quality": qual, "method": 6})
    elif fmt == "PNG": sk.update({"optimize": True})
    img.save(buf, **sk)
    return buf.getvalue()
