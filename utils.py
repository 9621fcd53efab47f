"""
ImageStage v1.0 - Utils Module
==============================
Streamlit session wiring for upload slots
"""

import asyncio
import threading
from typing import Any, Coroutine, Dict, Optional
import streamlit as st
import config
from crop_engine import format_file_size
from logger import get_logger
from models import Dimensions, ImageContext, SourceFile
from staging_store import StagingStore
from upload_session import UploadSession

logger = get_logger(__name__)
_session_lock = threading.Lock()

def inject_css():
    st.markdown("""
    <style>
        div[data-testid="column"] { background-color: #f8f9fa; border-radius: 8px; padding: 10px; border: 1px solid #eee; }
        .preview-placeholder { border: 2px dashed #e0e0e0; border-radius: 10px; padding: 40px; text-align: center; color: #888; }
    </style>
    """, unsafe_allow_html=True)

def init_session_state():
    """Initializes all state variables"""
    if 'staging_store' not in st.session_state:
        st.session_state['staging_store'] = StagingStore()
    if 'upload_sessions' not in st.session_state: st.session_state['upload_sessions'] = {}
    if 'form_values' not in st.session_state: st.session_state['form_values'] = {}
    if 'uploader_key' not in st.session_state: st.session_state['uploader_key'] = 0
    if 'lang_code' not in st.session_state: st.session_state['lang_code'] = 'ua'
    if 'editing_slot' not in st.session_state: st.session_state['editing_slot'] = None
    if 'saved_values' not in st.session_state: st.session_state['saved_values'] = None
    if 'grant_url' not in st.session_state: st.session_state['grant_url'] = config.GRANT_ENDPOINT

def run_async(coro: Coroutine) -> Any:
    """Run a coroutine to completion from a Streamlit script run"""
    return asyncio.run(coro)

def get_store() -> StagingStore:
    return st.session_state['staging_store']

def get_upload_session(slot: str, context: ImageContext) -> UploadSession:
    """
    Return the session behind a form slot, creating it on first use

    The slot's form value follows the session: a staged handle after
    crop/stage, the durable key after commit, nothing after removal.
    A context switch starts a fresh session and discards the old handle.
    """
    sessions: Dict[str, UploadSession] = st.session_state['upload_sessions']
    session = sessions.get(slot)
    if session is not None and session.context == context:
        return session
    if session is not None:
        session.remove()

    def on_complete(value, derivation):
        safe_form_update(slot, value)

    def on_error(message):
        logger.warning(f"Slot '{slot}': {message}")

    def on_remove():
        safe_form_update(slot, None)

    session = UploadSession(
        context,
        get_store(),
        on_upload_complete=on_complete,
        on_upload_error=on_error,
        on_remove=on_remove
    )
    session.restore(st.session_state['form_values'].get(slot))
    sessions[slot] = session
    return session

def source_from_upload(uploaded_file) -> Optional[SourceFile]:
    if uploaded_file is None:
        return None
    return SourceFile.from_uploaded(uploaded_file)

def get_file_info_str(file: SourceFile, dims: Optional[Dimensions]) -> str:
    size_str = format_file_size(file.size)
    dims_str = str(dims) if dims else "?"
    return f"📄 **{file.name}** &nbsp;•&nbsp; 📏 **{dims_str}** &nbsp;•&nbsp; 💾 **{size_str}**"

def aspect_label(aspect: Optional[float], free_label: str) -> str:
    if aspect is None:
        return free_label
    return f"{aspect:.3g}:1"

def clear_staged() -> int:
    """Discard every staged image no slot refers to any more"""
    store = get_store()
    live = {v for v in st.session_state['form_values'].values() if v}
    removed = 0
    for handle in store.handles():
        if handle not in live:
            store.discard(handle)
            removed += 1
    removed += store.clear_expired()
    return removed

def safe_form_update(slot: str, value: Optional[str]):
    with _session_lock:
        if value is None:
            st.session_state['form_values'].pop(slot, None)
        else:
            st.session_state['form_values'][slot] = value
