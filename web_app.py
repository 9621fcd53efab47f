"""
ImageStage v1.0 - Main Application
==================================
Demo form: pick, crop and stage an image, upload it on save
"""

import json
import streamlit as st

import config
import contexts
import editor_module as editor
import translations as T_DATA
import utils
from grant_provider import HttpGrantProvider
from logger import get_logger
from upload_commit import UploadFailed
from upload_session import SessionStatus

logger = get_logger(__name__)

st.set_page_config(
    page_title=f"{config.APP_NAME} v{config.APP_VERSION}",
    page_icon="🖼️",
    layout="wide",
    initial_sidebar_state="expanded"
)

utils.inject_css()
utils.init_session_state()

if 'contexts_loaded' not in st.session_state:
    try:
        contexts.load_default_overrides()
    except ValueError as e:
        st.error(str(e))
    st.session_state['contexts_loaded'] = True

lang_code = st.session_state['lang_code']
T = T_DATA.TRANSLATIONS[lang_code]

# === SIDEBAR ===
with st.sidebar:
    st.header(T['sb_config'])
    st.selectbox(T['lbl_lang'], list(T_DATA.TRANSLATIONS), key='lang_code')

    context_name = st.selectbox(T['lbl_context'], contexts.available_contexts(), key='context_key')
    context = contexts.get_context(context_name)

    st.markdown(T['lbl_requirements'].format(
        context.min_width, context.min_height, utils.format_file_size(context.max_file_size)
    ))
    st.markdown(T['lbl_aspect'].format(utils.aspect_label(context.aspect_ratio, T['lbl_aspect_free'])))
    st.caption(T['lbl_cropping_on'] if context.cropping_enabled else T['lbl_cropping_off'])

    st.text_input(T['lbl_grant_url'], key='grant_url')

    with st.expander(T['lbl_contexts_file'], expanded=False):
        uploaded_contexts = st.file_uploader(T['lbl_contexts_file'], type=['json'], key='contexts_uploader')
        if uploaded_contexts and f"processed_{uploaded_contexts.name}" not in st.session_state:
            try:
                loaded = contexts.load_contexts_from_json(uploaded_contexts)
                st.session_state[f"processed_{uploaded_contexts.name}"] = True
                st.success(T['msg_contexts_loaded'].format(len(loaded)))
            except ValueError as e:
                st.error(T['error_contexts'].format(e))

    if st.button(T['btn_clear_staged'], use_container_width=True):
        st.toast(T['msg_cleared'].format(utils.clear_staged()))

    with st.expander(T['about_title']):
        st.caption(T['about_desc'])
        st.caption(f"{T['about_version']}: {config.APP_VERSION}")
        st.caption(f"© {config.APP_AUTHOR} · {config.APP_LICENSE} · {config.APP_REPO}")

# === MAIN ===
st.title(T['title'])
st.caption(T['subtitle'])
c_left, c_right = st.columns([1.8, 1], gap="large")

slot = 'image'
session = utils.get_upload_session(slot, context)

with c_left:
    st.subheader(T['form_header'])
    title = st.text_input(T['lbl_title'], key='title_key')

    st.markdown(f"**{T['lbl_image']}**")
    accepted = sorted({config.EXTENSION_BY_CONTENT_TYPE[t] for t in context.accepted_file_types
                       if t in config.EXTENSION_BY_CONTENT_TYPE})
    if 'jpg' in accepted:
        accepted.append('jpeg')
    uploaded = st.file_uploader(T['uploader_label'], type=accepted, key=f"up_{st.session_state['uploader_key']}")
    if uploaded:
        with st.spinner(T['slot_validating']):
            utils.run_async(session.select_file(utils.source_from_upload(uploaded)))
        st.session_state['uploader_key'] += 1
        st.rerun()

    state = session.state
    if state.status == SessionStatus.INVALID:
        st.error(state.error)
    elif state.status == SessionStatus.CROPPING:
        editor.open_editor_dialog(slot, context, T)

    if state.committed_key:
        st.success(T['slot_committed'].format(state.committed_key))
    elif state.handle:
        st.info(T['slot_staged'].format(state.handle))
        if state.error:
            st.error(state.error)
    elif state.status != SessionStatus.INVALID:
        st.caption(T['slot_empty'])

    if state.value:
        b1, b2 = st.columns(2)
        with b1:
            can_edit = context.cropping_enabled and state.status == SessionStatus.PREVIEWING
            if st.button(T['btn_edit'], use_container_width=True, disabled=not can_edit):
                utils.run_async(session.edit())
                st.rerun()
        with b2:
            if st.button(T['btn_remove'], use_container_width=True):
                session.remove()
                st.rerun()

    st.divider()
    if st.button(T['btn_save'], type="primary", use_container_width=True):
        grant_url = st.session_state.get('grant_url')
        if session.state.has_pending_handle and not grant_url:
            st.warning(T['error_no_grant_url'])
        else:
            try:
                if session.state.has_pending_handle:
                    with st.spinner(T['msg_saving']):
                        utils.run_async(session.commit(HttpGrantProvider(grant_url)))
                st.session_state['saved_values'] = {
                    'title': title,
                    slot: st.session_state['form_values'].get(slot)
                }
                logger.info(f"Form saved: {st.session_state['saved_values']}")
                st.toast(T['msg_saved'])
                st.rerun()
            except UploadFailed as e:
                st.error(T['error_upload'].format(e))

# === PREVIEW ===
with c_right:
    state = session.state
    st.caption(T[f'status_{state.status.value}'])
    if state.derivation is not None:
        st.image(state.derivation.binary, caption=str(state.derivation.dimensions), use_container_width=True)
    else:
        st.markdown(f'<div class="preview-placeholder">{T["slot_empty"]}</div>', unsafe_allow_html=True)

    if st.session_state['saved_values']:
        st.markdown(f"**{T['lbl_saved_values']}**")
        st.code(json.dumps(st.session_state['saved_values'], indent=2, ensure_ascii=False), language='json')
