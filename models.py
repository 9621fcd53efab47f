"""
ImageStage v1.0 - Data Model
============================
Records shared by the validator, compositor, staging store and session
"""

import mimetypes
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import config


class ErrorReason(str, Enum):
    """Why an image was rejected or could not be committed"""
    FILE_TOO_LARGE = "FileTooLarge"
    UNSUPPORTED_TYPE = "UnsupportedType"
    DECODE_ERROR = "DecodeError"
    TOO_SMALL = "TooSmall"
    COMPOSITE_ERROR = "CompositeError"
    UPLOAD_FAILED = "UploadFailed"


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class ImageContext:
    """
    Immutable per-module image requirements

    context_id namespaces staged handles and upload file names;
    name is the registry key the context was resolved from.
    """
    context_id: str
    min_width: int
    min_height: int
    aspect_ratio: Optional[float] = None
    max_file_size: int = config.MAX_FILE_SIZE
    quality: float = config.DEFAULT_QUALITY
    allow_rotation: bool = False
    allow_zoom: bool = False
    zoom_range: Tuple[float, float] = config.DEFAULT_ZOOM_RANGE
    accepted_file_types: Tuple[str, ...] = tuple(config.DEFAULT_ACCEPTED_FILE_TYPES)
    output_format: str = config.OUTPUT_FORMAT
    name: Optional[str] = None

    def __post_init__(self):
        if self.min_width <= 0 or self.min_height <= 0:
            raise ValueError(
                f"Context '{self.context_id}': minimum size must be positive, "
                f"got {self.min_width}x{self.min_height}"
            )
        if self.aspect_ratio is not None and self.aspect_ratio <= 0:
            raise ValueError(f"Context '{self.context_id}': aspect ratio must be positive")
        if not 0 < self.quality <= 1:
            raise ValueError(f"Context '{self.context_id}': quality must be in (0, 1]")
        low, high = self.zoom_range
        if low <= 0 or low > high:
            raise ValueError(f"Context '{self.context_id}': invalid zoom range {self.zoom_range}")
        if self.output_format not in config.SUPPORTED_OUTPUT_FORMATS:
            raise ValueError(f"Context '{self.context_id}': unsupported output format {self.output_format}")

    @property
    def cropping_enabled(self) -> bool:
        return self.allow_zoom or self.allow_rotation

    @property
    def required_dimensions(self) -> Dimensions:
        return Dimensions(self.min_width, self.min_height)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ImageContext":
        """
        Build a context from a registry entry

        Accepts snake_case keys as well as the camelCase keys used by
        the dashboard's JSON configuration.
        """
        def pick(snake: str, camel: str, default=None):
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        zoom_range = pick('zoom_range', 'zoomRange') or config.DEFAULT_ZOOM_RANGE
        accepted = pick('accepted_file_types', 'acceptedFileTypes') or config.DEFAULT_ACCEPTED_FILE_TYPES
        aspect = pick('aspect_ratio', 'aspectRatio')

        return cls(
            context_id=data.get('module') or name,
            min_width=int(pick('min_width', 'minWidth')),
            min_height=int(pick('min_height', 'minHeight')),
            aspect_ratio=float(aspect) if aspect is not None else None,
            max_file_size=int(pick('max_file_size', 'maxFileSize', config.MAX_FILE_SIZE)),
            quality=float(pick('quality', 'quality', config.DEFAULT_QUALITY)),
            allow_rotation=bool(pick('allow_rotation', 'allowRotation', False)),
            allow_zoom=bool(pick('allow_zoom', 'allowZoom', False)),
            zoom_range=(float(zoom_range[0]), float(zoom_range[1])),
            accepted_file_types=tuple(accepted),
            output_format=pick('output_format', 'outputFormat', config.OUTPUT_FORMAT),
            name=name
        )


@dataclass(frozen=True)
class SourceFile:
    """A candidate file as picked or dropped by the user"""
    name: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path) -> "SourceFile":
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'
        return cls(name=path.name, content_type=content_type, data=path.read_bytes())

    @classmethod
    def from_uploaded(cls, uploaded_file) -> "SourceFile":
        """Wrap a Streamlit UploadedFile"""
        content_type = uploaded_file.type or mimetypes.guess_type(uploaded_file.name)[0] or ''
        return cls(name=uploaded_file.name, content_type=content_type, data=bytes(uploaded_file.getbuffer()))


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    required_dimensions: Dimensions
    error: Optional[str] = None
    reason: Optional[ErrorReason] = None
    actual_dimensions: Optional[Dimensions] = None


@dataclass(frozen=True)
class CropArea:
    """Crop rectangle in (rotated) source pixel space"""
    x: int
    y: int
    width: int
    height: int

    @property
    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_box(self) -> Tuple[int, int, int, int]:
        """Return (left, top, right, bottom) as used by PIL"""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @classmethod
    def full_frame(cls, width: int, height: int) -> "CropArea":
        return cls(0, 0, width, height)


@dataclass(frozen=True)
class Flip:
    horizontal: bool = False
    vertical: bool = False


@dataclass(frozen=True)
class DerivedImage:
    """Output of compositing together with the parameters that produced it"""
    binary: bytes = field(repr=False)
    width: int
    height: int
    crop_area: CropArea
    zoom: float = 1.0
    rotation_degrees: float = 0
    content_type: str = 'image/jpeg'

    @property
    def dimensions(self) -> Dimensions:
        return Dimensions(self.width, self.height)

    @classmethod
    def identity(cls, source: SourceFile, dimensions: Dimensions) -> "DerivedImage":
        """Derivation of a file staged as-is, without compositing"""
        return cls(
            binary=source.data,
            width=dimensions.width,
            height=dimensions.height,
            crop_area=CropArea.full_frame(dimensions.width, dimensions.height),
            zoom=1.0,
            rotation_degrees=0,
            content_type=source.content_type
        )


@dataclass
class StagedEntry:
    """
    In-memory image awaiting commit

    Owned by the staging store. Once committed_key is set the entry is
    frozen: every further assignment raises AttributeError.
    """
    handle: str
    binary: bytes = field(repr=False)
    data_url_preview: Optional[str] = field(repr=False)
    origin_file: SourceFile
    derivation: DerivedImage
    context_id: str
    created_at: float = field(default_factory=time.time)
    committed_key: Optional[str] = None

    def __setattr__(self, name, value):
        if self.__dict__.get('committed_key') is not None:
            raise AttributeError(f"Staged entry {self.handle} is committed and can no longer change")
        super().__setattr__(name, value)

    @property
    def is_committed(self) -> bool:
        return self.committed_key is not None

    @property
    def content_type(self) -> str:
        return self.derivation.content_type

    @property
    def byte_size(self) -> int:
        return len(self.binary)


@dataclass(frozen=True)
class SignedUploadGrant:
    """Short-lived single-use authorization to PUT one binary"""
    upload_url: str
    key: str
    expires_in_seconds: int
    max_file_size: int
    recommended_dimensions: Optional[Dimensions] = None
    allowed_file_types: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.expires_in_seconds <= 0:
            raise ValueError(f"Grant for {self.key} has already expired")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedUploadGrant":
        """Build a grant from the issuer's camelCase payload"""
        recommended = data.get('recommendedDimensions') or data.get('recommended_dimensions')
        return cls(
            upload_url=data.get('uploadUrl') or data['upload_url'],
            key=data['key'],
            expires_in_seconds=int(data.get('expiresIn', data.get('expires_in_seconds', 0))),
            max_file_size=int(data.get('maxFileSize', data.get('max_file_size', 0))),
            recommended_dimensions=(
                Dimensions(int(recommended['width']), int(recommended['height']))
                if recommended else None
            ),
            allowed_file_types=tuple(data.get('allowedFileTypes') or data.get('allowed_file_types') or ())
        )
