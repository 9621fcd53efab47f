"""
ImageStage v1.0 - Upload Session
================================
Per-slot state machine: select -> validate -> crop -> stage -> commit
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple
import config
import geometry
from crop_engine import CompositeError, derive_image, to_data_url
from image_backend import DecodeError, ImageBackend, PillowBackend
from logger import get_logger
from models import (
    CropArea, DerivedImage, Dimensions, ErrorReason, Flip,
    ImageContext, SourceFile, ValidationResult
)
from staging_store import StagingStore
from upload_commit import GrantProvider, Transport, UploadFailed, commit_upload
from validators import inspect_image, validate_cropped_dimensions

logger = get_logger(__name__)

class SessionError(Exception):
    """Operation not allowed in the current session state"""
    pass

class SessionStatus(str, Enum):
    EMPTY = "empty"
    VALIDATING = "validating"
    INVALID = "invalid"
    CROPPING = "cropping"
    PREVIEWING = "previewing"
    COMMITTING = "committing"
    COMMITTED = "committed"
    REMOVED = "removed"

@dataclass(frozen=True)
class SessionState:
    """Snapshot published to subscribers after every transition"""
    status: SessionStatus = SessionStatus.EMPTY
    file_name: Optional[str] = None
    validation: Optional[ValidationResult] = None
    error: Optional[str] = None
    reason: Optional[ErrorReason] = None
    image_dimensions: Optional[Dimensions] = None
    crop_bounds: Optional[Dimensions] = None
    crop_area: Optional[CropArea] = None
    zoom: float = 1.0
    zoom_bounds: Tuple[float, float] = (1.0, 1.0)
    rotation: float = 0
    flip: Flip = field(default_factory=Flip)
    busy: bool = False
    handle: Optional[str] = None
    committed_key: Optional[str] = None
    derivation: Optional[DerivedImage] = None

    @property
    def value(self) -> Optional[str]:
        """What the enclosing form should store: durable key, else pending handle"""
        return self.committed_key or self.handle

    @property
    def has_pending_handle(self) -> bool:
        return self.handle is not None and self.committed_key is None

StateListener = Callable[[SessionState], None]

class UploadSession:
    """
    Orchestrates validator, compositor and staging store for one image slot

    The enclosing form keeps only state.value; it calls commit() at save
    time and remove() (or discard on the store) when the slot goes away.
    """

    def __init__(
        self,
        context: ImageContext,
        store: StagingStore,
        backend: Optional[ImageBackend] = None,
        on_upload_complete: Optional[Callable[[str, DerivedImage], None]] = None,
        on_upload_error: Optional[Callable[[str], None]] = None,
        on_remove: Optional[Callable[[], None]] = None
    ):
        self.context = context
        self.store = store
        self.backend = backend or PillowBackend()
        self.on_upload_complete = on_upload_complete
        self.on_upload_error = on_upload_error
        self.on_remove = on_remove
        self._state = SessionState()
        self._listeners: List[StateListener] = []
        self._token = 0
        self._file: Optional[SourceFile] = None
        self._source: Any = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def source_file(self) -> Optional[SourceFile]:
        return self._file

    @property
    def source_image(self) -> Any:
        """Decoded original, available while cropping"""
        return self._source

    @property
    def preview_url(self) -> Optional[str]:
        if self._state.handle:
            entry = self.store.get(self._state.handle)
            if entry is not None:
                return entry.data_url_preview
        if self._state.derivation is not None:
            return to_data_url(self._state.derivation.binary, self._state.derivation.content_type)
        return None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a function that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _set(self, state: SessionState) -> SessionState:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}")
        return state

    def _update(self, **changes) -> SessionState:
        return self._set(replace(self._state, **changes))

    def _notify_complete(self, value: str, derivation: Optional[DerivedImage]):
        if self.on_upload_complete:
            try:
                self.on_upload_complete(value, derivation)
            except Exception as e:
                logger.error(f"on_upload_complete callback failed: {e}")

    def _notify_error(self, message: str):
        if self.on_upload_error:
            try:
                self.on_upload_error(message)
            except Exception as e:
                logger.error(f"on_upload_error callback failed: {e}")

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    async def select_file(self, file: SourceFile) -> SessionState:
        """
        Start over with a newly picked or dropped file

        Any staged handle of this slot is discarded first. A later
        selection wins: results of an older, slower selection are dropped.
        """
        if self._state.status == SessionStatus.COMMITTING:
            raise SessionError("Cannot select a file while the image is being uploaded")

        self._token += 1
        token = self._token
        self._release_handle()
        self._file, self._source = file, None
        self._set(SessionState(status=SessionStatus.VALIDATING, file_name=file.name, busy=True))

        try:
            result, source = await inspect_image(file, self.context, backend=self.backend)
        except Exception as e:
            logger.error(f"Validation of {file.name} crashed: {e!r}")
            if token != self._token:
                return self._state
            return self._reject(file, ErrorReason.DECODE_ERROR, f"Failed to process image: {e}")
        if token != self._token:
            logger.debug(f"Dropping stale validation of {file.name}")
            return self._state

        if not result.valid:
            return self._reject(file, result.reason, result.error, result)

        if not self.context.cropping_enabled:
            return self._stage_direct(file, result)

        self._source = source
        width, height = self.backend.size(source)
        return self._enter_cropping(Dimensions(width, height), validation=result)

    def _reject(self, file: SourceFile, reason, error, validation=None) -> SessionState:
        self._file, self._source = None, None
        state = self._set(SessionState(
            status=SessionStatus.INVALID,
            file_name=file.name,
            validation=validation,
            error=error,
            reason=reason,
            image_dimensions=validation.actual_dimensions if validation else None
        ))
        self._notify_error(error or 'Invalid image file')
        return state

    def _stage_direct(self, file: SourceFile, result: ValidationResult) -> SessionState:
        derivation = DerivedImage.identity(file, result.actual_dimensions)
        handle = self.store.stage(file.data, derivation, self.context.context_id, file)
        state = self._set(SessionState(
            status=SessionStatus.PREVIEWING,
            file_name=file.name,
            validation=result,
            image_dimensions=result.actual_dimensions,
            crop_area=derivation.crop_area,
            handle=handle,
            derivation=derivation
        ))
        self._notify_complete(handle, derivation)
        return state

    # ------------------------------------------------------------------
    # Cropping
    # ------------------------------------------------------------------
    def _enter_cropping(
        self,
        dimensions: Dimensions,
        validation: Optional[ValidationResult] = None,
        rotation: float = 0,
        zoom: Optional[float] = None,
        crop: Optional[CropArea] = None,
        flip: Optional[Flip] = None
    ) -> SessionState:
        bounds_w, bounds_h = geometry.rotated_canvas_size(dimensions.width, dimensions.height, rotation)
        zoom_bounds = geometry.zoom_bounds(bounds_w, bounds_h, self.context)
        zoom = geometry.clamp_zoom(zoom if zoom is not None else zoom_bounds[0], zoom_bounds)
        if crop is None:
            crop = geometry.centered_crop(bounds_w, bounds_h, self.context.aspect_ratio, zoom)
        else:
            crop = geometry.clamp_crop_area(crop, bounds_w, bounds_h)

        return self._set(SessionState(
            status=SessionStatus.CROPPING,
            file_name=self._file.name if self._file else None,
            validation=validation or self._state.validation,
            image_dimensions=dimensions,
            crop_bounds=Dimensions(bounds_w, bounds_h),
            crop_area=crop,
            zoom=zoom,
            zoom_bounds=zoom_bounds,
            rotation=rotation,
            flip=flip or Flip()
        ))

    def _require_cropping(self) -> bool:
        """True when crop parameters may change now; raises outside CROPPING"""
        if self._state.status != SessionStatus.CROPPING:
            raise SessionError(f"Not cropping (state: {self._state.status.value})")
        if self._state.busy:
            logger.debug("Ignoring crop change while a crop is being processed")
            return False
        return True

    def _recenter(self, zoom: float, bounds: Dimensions) -> CropArea:
        """Crop window for zoom, centered where the current crop is"""
        window_w, window_h = geometry.crop_window_at_zoom(
            bounds.width, bounds.height, self.context.aspect_ratio, zoom
        )
        current = self._state.crop_area
        if current is None:
            return geometry.centered_crop(bounds.width, bounds.height, self.context.aspect_ratio, zoom)
        center_x = current.x + current.width / 2
        center_y = current.y + current.height / 2
        width, height = max(1, round(window_w)), max(1, round(window_h))
        crop = CropArea(round(center_x - width / 2), round(center_y - height / 2), width, height)
        return geometry.clamp_crop_area(crop, bounds.width, bounds.height)

    def set_zoom(self, zoom: float) -> SessionState:
        if not self._require_cropping():
            return self._state
        if not self.context.allow_zoom:
            raise SessionError(f"Zoom is disabled for '{self.context.context_id}'")
        zoom = geometry.clamp_zoom(zoom, self._state.zoom_bounds)
        crop = self._recenter(zoom, self._state.crop_bounds)
        return self._update(zoom=zoom, crop_area=crop, error=None, reason=None)

    def set_rotation(self, degrees: float) -> SessionState:
        if not self._require_cropping():
            return self._state
        if not self.context.allow_rotation:
            raise SessionError(f"Rotation is disabled for '{self.context.context_id}'")
        dims = self._state.image_dimensions
        bounds_w, bounds_h = geometry.rotated_canvas_size(dims.width, dims.height, degrees)
        bounds = Dimensions(bounds_w, bounds_h)
        zoom_bounds = geometry.zoom_bounds(bounds_w, bounds_h, self.context)
        zoom = geometry.clamp_zoom(self._state.zoom, zoom_bounds)
        crop = geometry.centered_crop(bounds_w, bounds_h, self.context.aspect_ratio, zoom)
        return self._update(
            rotation=degrees, crop_bounds=bounds, zoom_bounds=zoom_bounds,
            zoom=zoom, crop_area=crop, error=None, reason=None
        )

    def rotate(self, delta: float = config.ROTATION_STEP) -> SessionState:
        return self.set_rotation(self._state.rotation + delta)

    def set_flip(self, horizontal: bool = False, vertical: bool = False) -> SessionState:
        if not self._require_cropping():
            return self._state
        if not self.context.allow_rotation:
            raise SessionError(f"Flipping is disabled for '{self.context.context_id}'")
        return self._update(flip=Flip(horizontal, vertical))

    def set_crop_area(self, crop: CropArea) -> SessionState:
        """
        Apply a crop rectangle drawn by the user (rotated pixel space)

        The rectangle is kept inside the rotated image; for contexts with
        an aspect ratio it is also resized so its implied zoom stays within
        the slider range.
        """
        if not self._require_cropping():
            return self._state
        bounds = self._state.crop_bounds
        crop = geometry.clamp_crop_area(crop, bounds.width, bounds.height)
        zoom = self._state.zoom
        if not crop.is_degenerate:
            base_w, base_h = geometry.crop_window_at_zoom(
                bounds.width, bounds.height, self.context.aspect_ratio, 1.0
            )
            implied = min(base_w / crop.width, base_h / crop.height)
            zoom = geometry.clamp_zoom(implied, self._state.zoom_bounds)
            if self.context.aspect_ratio is not None and abs(zoom - implied) > 1e-9:
                self._state = replace(self._state, crop_area=crop)
                crop = self._recenter(zoom, bounds)
        return self._update(crop_area=crop, zoom=zoom, error=None, reason=None)

    def set_crop_percentage(self, crop_percent) -> SessionState:
        """Apply a crop given in percent of the rotated image"""
        bounds = self._state.crop_bounds
        if bounds is None:
            raise SessionError("Not cropping")
        return self.set_crop_area(geometry.pixel_crop_from_percentage(crop_percent, bounds.width, bounds.height))

    async def confirm_crop(self) -> SessionState:
        """
        Composite the current crop and stage it

        Ignored while a previous confirm is still running. A failed
        composite keeps the cropper open with the error; nothing is staged.
        """
        if self._state.status != SessionStatus.CROPPING:
            raise SessionError(f"Nothing to crop (state: {self._state.status.value})")
        if self._state.busy:
            logger.debug("Confirm ignored: crop already in progress")
            return self._state

        token = self._token
        state = self._update(busy=True, error=None, reason=None)
        try:
            derived = await derive_image(
                self._source, state.crop_area, state.zoom, state.rotation,
                self.context, state.flip, self.backend
            )
        except CompositeError as e:
            if token != self._token:
                return self._state
            self._update(busy=False, error=str(e), reason=ErrorReason.COMPOSITE_ERROR)
            self._notify_error(str(e))
            return self._state

        if token != self._token:
            logger.debug("Dropping crop result of a superseded selection")
            return self._state

        check = validate_cropped_dimensions(derived.dimensions, self.context)
        if not check.valid:
            self._update(busy=False, error=check.error, reason=check.reason)
            self._notify_error(check.error)
            return self._state

        handle = self.store.stage(derived.binary, derived, self.context.context_id, self._file)
        state = self._update(
            status=SessionStatus.PREVIEWING, busy=False, handle=handle,
            derivation=derived, committed_key=None
        )
        self._notify_complete(handle, derived)
        return state

    async def edit(self) -> SessionState:
        """Reopen the cropper from the original file, seeded with the last crop"""
        state = self._state
        if state.status != SessionStatus.PREVIEWING or state.handle is None:
            raise SessionError(f"Nothing to edit (state: {state.status.value})")
        if not self.context.cropping_enabled:
            raise SessionError(f"Cropping is disabled for '{self.context.context_id}'")
        if self._file is None:
            raise SessionError("Original file is no longer available")

        token = self._token
        if self._source is None:
            try:
                self._source = await self.backend.decode(self._file.data)
            except DecodeError as e:
                raise SessionError(f"Original file cannot be decoded: {e}") from e
            if token != self._token:
                return self._state

        self.store.discard(state.handle)
        derivation = state.derivation
        width, height = self.backend.size(self._source)
        return self._enter_cropping(
            Dimensions(width, height),
            rotation=derivation.rotation_degrees if derivation else 0,
            zoom=derivation.zoom if derivation else None,
            crop=derivation.crop_area if derivation else None,
            flip=state.flip
        )

    def cancel_crop(self) -> SessionState:
        """Close the cropper without staging; the slot becomes empty"""
        if self._state.status != SessionStatus.CROPPING:
            raise SessionError(f"Not cropping (state: {self._state.status.value})")
        self._token += 1
        self._file, self._source = None, None
        return self._set(SessionState())

    # ------------------------------------------------------------------
    # Removal / restore
    # ------------------------------------------------------------------
    def remove(self) -> SessionState:
        """User removal: discard any staged image and clear the slot"""
        if self._state.status == SessionStatus.EMPTY:
            return self._state
        self._token += 1
        self._release_handle()
        self._file, self._source = None, None
        state = self._set(SessionState(status=SessionStatus.REMOVED))
        if self.on_remove:
            try:
                self.on_remove()
            except Exception as e:
                logger.error(f"on_remove callback failed: {e}")
        return state

    def _release_handle(self):
        handle = self._state.handle
        if handle is not None:
            self.store.discard(handle)

    def restore(self, value: Optional[str]) -> SessionState:
        """
        Re-attach the slot to a value held by the form

        A live handle resumes previewing; a durable key (or the handle of
        an already committed entry) shows as committed.
        """
        if self._state.status == SessionStatus.COMMITTING:
            raise SessionError("Cannot restore while the image is being uploaded")
        self._token += 1
        self._source = None
        if not value:
            self._file = None
            return self._set(SessionState())

        if not self.store.is_handle(value):
            self._file = None
            return self._set(SessionState(status=SessionStatus.COMMITTED, committed_key=value))

        entry = self.store.get(value)
        if entry is None:
            key = self.store.committed_key(value)
            self._file = None
            if key is not None:
                return self._set(SessionState(status=SessionStatus.COMMITTED, committed_key=key))
            logger.warning(f"Form value {value} no longer refers to a staged image")
            return self._set(SessionState())

        self._file = entry.origin_file
        derivation = entry.derivation
        return self._set(SessionState(
            status=SessionStatus.COMMITTED if entry.is_committed else SessionStatus.PREVIEWING,
            file_name=entry.origin_file.name,
            image_dimensions=derivation.dimensions,
            crop_area=derivation.crop_area,
            zoom=derivation.zoom,
            rotation=derivation.rotation_degrees,
            handle=value,
            committed_key=entry.committed_key,
            derivation=derivation
        ))

    # ------------------------------------------------------------------
    # Commit (called by the enclosing form at save time)
    # ------------------------------------------------------------------
    async def commit(self, grant_provider: GrantProvider, transport: Optional[Transport] = None) -> str:
        """
        Upload the staged image and return its durable key

        Raises:
            UploadFailed: The handle stays staged so saving can be retried
        """
        state = self._state
        if state.status == SessionStatus.COMMITTED and state.committed_key:
            return state.committed_key
        if state.handle is None or state.status not in (SessionStatus.PREVIEWING, SessionStatus.COMMITTING):
            raise SessionError(f"Nothing to commit (state: {state.status.value})")

        handle = state.handle
        if state.status != SessionStatus.COMMITTING:
            self._update(status=SessionStatus.COMMITTING, busy=True, error=None, reason=None)
        try:
            key = await commit_upload(self.store, handle, grant_provider, transport, release=True)
        except UploadFailed as e:
            self._abort_commit(handle, str(e), e.reason)
            self._notify_error(str(e))
            raise
        except BaseException:
            # Cancelled or unexpected failure; the slot goes back to PREVIEWING
            self._abort_commit(handle)
            raise

        if self._state.status == SessionStatus.COMMITTING and self._state.handle == handle:
            self._update(status=SessionStatus.COMMITTED, busy=False, committed_key=key)
            self._notify_complete(key, self._state.derivation)
        return key

    def _abort_commit(self, handle: str, error: Optional[str] = None, reason=None):
        if self._state.status == SessionStatus.COMMITTING and self._state.handle == handle:
            self._update(status=SessionStatus.PREVIEWING, busy=False, error=error, reason=reason)
