"""
ImageStage v1.0 - Unit Tests
============================
Test suite for context registry and ImageContext
"""

import io
import json
import os
import sys
import pytest

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import contexts
from models import Dimensions, ImageContext

@pytest.fixture(autouse=True)
def clean_overrides():
    contexts.reset_overrides()
    yield
    contexts.reset_overrides()

def test_venues_context():
    context = contexts.get_context('venues')
    assert context.context_id == 'venues'
    assert context.required_dimensions == Dimensions(1080, 1080)
    assert context.aspect_ratio == 1.0
    assert context.zoom_range == (1.0, 3.0)
    assert context.cropping_enabled

def test_banner_variant_uses_module_namespace():
    context = contexts.get_context('banners-premium')
    assert context.context_id == 'banners'
    assert context.name == 'banners-premium'
    assert context.required_dimensions == Dimensions(970, 250)
    assert not context.cropping_enabled

def test_dedicated_is_free_form():
    context = contexts.get_context('dedicated')
    assert context.aspect_ratio is None
    assert context.quality == 1.0

def test_unknown_context():
    with pytest.raises(KeyError):
        contexts.get_context('nope')

def test_keyword_overrides():
    context = contexts.get_context('banners', min_width=728, min_height=90, aspect_ratio=728 / 90)
    assert context.required_dimensions == Dimensions(728, 90)
    # Registry entry itself is unchanged
    assert contexts.get_context('banners').min_width == 970

def test_load_contexts_from_json():
    data = {
        'podcasts': {'minWidth': 1400, 'minHeight': 1400, 'aspectRatio': 1, 'allowZoom': True},
        'profile': {'maxFileSize': 2 * 1024 * 1024}
    }
    loaded = contexts.load_contexts_from_json(io.StringIO(json.dumps(data)))

    assert set(loaded) == {'podcasts', 'profile'}
    assert 'podcasts' in contexts.available_contexts()
    assert contexts.get_context('podcasts').allow_zoom
    profile = contexts.get_context('profile')
    assert profile.max_file_size == 2 * 1024 * 1024
    # Merged over the built-in entry
    assert profile.min_width == 400

def test_load_contexts_rejects_bad_entries_atomically():
    data = {
        'podcasts': {'minWidth': 1400, 'minHeight': 1400},
        'broken': {'minWidth': 0, 'minHeight': 10}
    }
    with pytest.raises(ValueError):
        contexts.load_contexts_from_json(io.StringIO(json.dumps(data)))
    assert 'podcasts' not in contexts.available_contexts()

def test_load_contexts_incomplete_entry():
    with pytest.raises(ValueError, match="incomplete"):
        contexts.load_contexts_from_json(io.StringIO('{"podcasts": {"minWidth": 100}}'))

def test_load_contexts_malformed_json():
    with pytest.raises(ValueError):
        contexts.load_contexts_from_json(io.StringIO('{not json'))
    with pytest.raises(ValueError):
        contexts.load_contexts_from_json(io.StringIO('[1, 2]'))

@pytest.mark.parametrize("kwargs", [
    {'min_width': 0, 'min_height': 10},
    {'min_width': 10, 'min_height': 10, 'aspect_ratio': -1.0},
    {'min_width': 10, 'min_height': 10, 'quality': 0},
    {'min_width': 10, 'min_height': 10, 'zoom_range': (2.0, 1.0)},
    {'min_width': 10, 'min_height': 10, 'output_format': 'GIF'},
])
def test_image_context_invariants(kwargs):
    with pytest.raises(ValueError):
        ImageContext(context_id='x', **kwargs)
