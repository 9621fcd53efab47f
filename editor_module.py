"""
ImageStage v1.0 - Editor Module
===============================
Crop dialog (zoom, rotate, flip) driving an UploadSession
"""

from fractions import Fraction
from typing import Optional, Tuple
import streamlit as st
from PIL import Image
from streamlit_cropper import st_cropper
import config
import utils
from logger import get_logger
from models import CropArea, Dimensions, ImageContext
from upload_session import SessionError, SessionStatus, UploadSession
from validators import validate_dimensions

logger = get_logger(__name__)

def create_proxy_image(
    img: Image.Image,
    target_width: int = None
) -> Tuple[Image.Image, float]:
    """
    Create proxy (downscaled) image for editor performance

    Returns:
        Tuple of (proxy_image, scale_factor)
    """
    if target_width is None:
        target_width = config.PROXY_IMAGE_WIDTH

    w, h = img.size
    if w <= target_width:
        return img, 1.0

    ratio = target_width / w
    new_h = max(1, int(h * ratio))
    validate_dimensions(target_width, new_h)

    proxy = img.resize((target_width, new_h), Image.Resampling.LANCZOS)
    scale = w / target_width
    logger.debug(f"Proxy created: {w}x{h} → {target_width}x{new_h} (scale: {scale:.2f})")
    return proxy, scale

def cropper_aspect(aspect_ratio: Optional[float]) -> Optional[Tuple[int, int]]:
    """Context aspect ratio as the (w, h) pair st_cropper expects"""
    if aspect_ratio is None:
        return None
    frac = Fraction(aspect_ratio).limit_denominator(100)
    return frac.numerator, frac.denominator

def crop_box_to_area(rect: dict, scale: float) -> CropArea:
    """Cropper box on the proxy -> crop area in rotated source pixels"""
    return CropArea(
        x=int(round(rect['left'] * scale)),
        y=int(round(rect['top'] * scale)),
        width=int(round(rect['width'] * scale)),
        height=int(round(rect['height'] * scale))
    )

def area_to_coords(crop: Optional[CropArea], scale: float) -> Optional[Tuple[int, int, int, int]]:
    """Crop area -> st_cropper default_coords (x1, x2, y1, y2) on the proxy"""
    if crop is None:
        return None
    left, top, right, bottom = crop.as_box()
    return (int(left / scale), int(right / scale), int(top / scale), int(bottom / scale))

def output_dimensions(session: UploadSession) -> Dimensions:
    """Size the current crop will be staged at"""
    context = session.context
    if context.aspect_ratio is not None:
        return context.required_dimensions
    crop = session.state.crop_area
    return Dimensions(crop.width, crop.height)

def _rotated_surface(session: UploadSession) -> Image.Image:
    state = session.state
    bounds = state.crop_bounds
    return utils.run_async(session.backend.composite_to_surface(
        session.source_image,
        CropArea.full_frame(bounds.width, bounds.height),
        state.rotation,
        state.flip,
        (bounds.width, bounds.height)
    ))

def _bump(slot: str):
    st.session_state[f'reset_{slot}'] = st.session_state.get(f'reset_{slot}', 0) + 1

@st.dialog("🛠 Editor", width="large")
def open_editor_dialog(slot: str, context: ImageContext, T: dict):
    """
    Crop dialog for a slot whose session is CROPPING

    Closing happens by leaving the CROPPING state: Apply stages the crop,
    Cancel empties the slot.
    """
    session = utils.get_upload_session(slot, context)
    state = session.state
    if state.status != SessionStatus.CROPPING:
        return

    try:
        img_full = _rotated_surface(session)
        img_proxy, scale_factor = create_proxy_image(img_full)

        st.caption(utils.get_file_info_str(session.source_file, state.image_dimensions))
        col_canvas, col_controls = st.columns([3, 1], gap="small")

        # === CANVAS ===
        with col_canvas:
            cropper_id = f"crp_{slot}_{st.session_state.get(f'reset_{slot}', 0)}"
            rect = st_cropper(
                img_proxy,
                realtime_update=True,
                box_color='#FF0000',
                aspect_ratio=cropper_aspect(context.aspect_ratio),
                should_resize_image=False,
                default_coords=area_to_coords(state.crop_area, scale_factor),
                return_type='box',
                key=cropper_id
            )

        if rect:
            area = crop_box_to_area(rect, scale_factor)
            if area != state.crop_area:
                state = session.set_crop_area(area)

        # === CONTROLS ===
        with col_controls:
            low, high = state.zoom_bounds
            if context.allow_zoom and high > low:
                zoom = st.slider(
                    T['lbl_zoom'], float(low), float(high), float(state.zoom),
                    step=config.ZOOM_STEP, key=f"zoom_{cropper_id}"
                )
                if abs(zoom - state.zoom) > 1e-6:
                    session.set_zoom(zoom)
                    _bump(slot)
                    st.rerun()

            if context.allow_rotation:
                st.markdown(T['lbl_rotate'])
                c1, c2 = st.columns(2)
                with c1:
                    if st.button(T['btn_rot_left'], use_container_width=True, key=f"rot_left_{slot}"):
                        session.rotate(-config.ROTATION_STEP)
                        _bump(slot)
                        st.rerun()
                with c2:
                    if st.button(T['btn_rot_right'], use_container_width=True, key=f"rot_right_{slot}"):
                        session.rotate(config.ROTATION_STEP)
                        _bump(slot)
                        st.rerun()

                st.markdown(T['lbl_flip'])
                flip_h = st.checkbox(T['chk_flip_h'], value=state.flip.horizontal, key=f"flip_h_{slot}")
                flip_v = st.checkbox(T['chk_flip_v'], value=state.flip.vertical, key=f"flip_v_{slot}")
                if (flip_h, flip_v) != (state.flip.horizontal, state.flip.vertical):
                    session.set_flip(flip_h, flip_v)
                    _bump(slot)
                    st.rerun()

            st.divider()
            out = output_dimensions(session)
            st.info(T['lbl_output'].format(out.width, out.height))
            if session.state.error:
                st.error(session.state.error)

            if st.button(T['btn_apply'], type="primary", use_container_width=True, key=f"apply_{slot}"):
                state = utils.run_async(session.confirm_crop())
                if state.status == SessionStatus.PREVIEWING:
                    logger.info(f"Slot '{slot}' staged as {state.handle}")
                    st.rerun()
                elif state.error:
                    st.error(state.error)

            if st.button(T['btn_cancel'], use_container_width=True, key=f"cancel_{slot}"):
                session.cancel_crop()
                utils.safe_form_update(slot, None)
                st.rerun()

    except SessionError as e:
        st.error(T['error_editor'].format(e))
        logger.error(f"Editor action rejected: {e}")
