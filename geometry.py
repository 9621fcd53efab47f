"""
ImageStage v1.0 - Geometry Module
=================================
Rotation bounds, zoom range and crop rectangle math
"""

import math
from typing import Mapping, Optional, Tuple, Union
from models import CropArea, ImageContext

Number = Union[int, float]


def _round_px(value: float) -> int:
    """Round half up, like the browser's Math.round"""
    return int(math.floor(value + 0.5))


def get_radian_angle(degrees: Number) -> float:
    return degrees * math.pi / 180


def rotated_bounding_box(width: Number, height: Number, rotation_degrees: Number) -> Tuple[float, float]:
    """Size of the axis-aligned box enclosing a width x height rectangle rotated around its center"""
    rad = get_radian_angle(rotation_degrees)
    cos_a, sin_a = abs(math.cos(rad)), abs(math.sin(rad))
    return (cos_a * width + sin_a * height, sin_a * width + cos_a * height)


def rotated_canvas_size(width: Number, height: Number, rotation_degrees: Number) -> Tuple[int, int]:
    """Rotated bounding box in whole pixels, never smaller than 1x1"""
    bw, bh = rotated_bounding_box(width, height, rotation_degrees)
    return max(1, _round_px(bw)), max(1, _round_px(bh))


def crop_window_at_zoom(
    image_width: Number,
    image_height: Number,
    aspect_ratio: Optional[float],
    zoom: float
) -> Tuple[float, float]:
    """
    Source-pixel size of the crop window at a zoom level

    At zoom 1 the window is the largest rectangle of aspect_ratio that fits
    inside the image (the whole image for free-form crops); zooming in
    shrinks it proportionally.
    """
    if zoom <= 0:
        raise ValueError(f"Zoom must be positive, got: {zoom}")

    if aspect_ratio is None:
        base_w, base_h = float(image_width), float(image_height)
    else:
        base_w = min(float(image_width), image_height * aspect_ratio)
        base_h = base_w / aspect_ratio
    return base_w / zoom, base_h / zoom


def max_zoom_for(
    image_width: Number,
    image_height: Number,
    target_width: Number,
    target_height: Number,
    aspect_ratio: Optional[float] = 1.0
) -> float:
    """
    Largest zoom at which the crop window still covers target_width x target_height

    The window is square unless another aspect_ratio is given; None means
    free-form (the whole image at zoom 1).
    """
    window_w, window_h = crop_window_at_zoom(image_width, image_height, aspect_ratio, 1.0)
    return min(window_w / target_width, window_h / target_height)


def min_zoom_for(
    image_width: Number,
    image_height: Number,
    target_width: Number,
    target_height: Number,
    aspect_ratio: Optional[float] = 1.0
) -> float:
    """
    Lower bound of the zoom slider, for a square window by default

    Pinned to 1.0 (full image visible) unless the image is too small to
    yield the target, in which case the floor drops to the largest zoom
    that still covers it.
    """
    return min(1.0, max_zoom_for(image_width, image_height, target_width, target_height, aspect_ratio))


def zoom_bounds(image_width: Number, image_height: Number, context: ImageContext) -> Tuple[float, float]:
    """Slider range [min_zoom_for, context max zoom] for an image of known size"""
    low = min_zoom_for(image_width, image_height, context.min_width, context.min_height, context.aspect_ratio)
    high = max(context.zoom_range[1], low)
    return low, high


def clamp_zoom(zoom: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, zoom))


def centered_crop(
    image_width: Number,
    image_height: Number,
    aspect_ratio: Optional[float],
    zoom: float = 1.0
) -> CropArea:
    """Crop window of the given zoom centered on the image"""
    window_w, window_h = crop_window_at_zoom(image_width, image_height, aspect_ratio, zoom)
    width = max(1, min(_round_px(window_w), int(image_width)))
    height = max(1, min(_round_px(window_h), int(image_height)))
    left = (int(image_width) - width) // 2
    top = (int(image_height) - height) // 2
    return CropArea(left, top, width, height)


def clamp_crop_area(crop: CropArea, bounds_width: Number, bounds_height: Number) -> CropArea:
    """Move (and if needed shrink) a crop so it lies fully inside the bounds"""
    bounds_width, bounds_height = int(bounds_width), int(bounds_height)
    width = min(crop.width, bounds_width)
    height = min(crop.height, bounds_height)
    left = max(0, min(crop.x, bounds_width - width))
    top = max(0, min(crop.y, bounds_height - height))
    return CropArea(left, top, width, height)


def _coords(crop: Union[CropArea, Mapping[str, Number]]) -> Tuple[float, float, float, float]:
    if isinstance(crop, Mapping):
        return crop['x'], crop['y'], crop['width'], crop['height']
    return crop.x, crop.y, crop.width, crop.height


def pixel_crop_from_percentage(
    crop_percent: Union[CropArea, Mapping[str, Number]],
    image_width: Number,
    image_height: Number
) -> CropArea:
    """Convert a crop expressed in percent of the image into whole pixels"""
    x, y, width, height = _coords(crop_percent)
    return CropArea(
        x=_round_px(x / 100 * image_width),
        y=_round_px(y / 100 * image_height),
        width=_round_px(width / 100 * image_width),
        height=_round_px(height / 100 * image_height)
    )
