"""
ImageStage v1.0.0 - Configuration Module
========================================
Centralized configuration and constants
"""

import os
from pathlib import Path

# === APPLICATION INFO ===
APP_VERSION = "1.0.0"
APP_NAME = "ImageStage"
APP_AUTHOR = "Marynyuk Andriy"
APP_LICENSE = "Proprietary"
APP_REPO = "https://github.com/MaanAndrii"

# === FILE SETTINGS ===
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_FILENAME_LENGTH = 255
MAX_IMAGE_PIXELS = 50_000_000  # checked from the header, before pixels are loaded
DEFAULT_ACCEPTED_FILE_TYPES = ['image/jpeg', 'image/png', 'image/webp']
EXTENSION_BY_CONTENT_TYPE = {
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/png': 'png',
    'image/webp': 'webp'
}

# === ENCODING ===
DEFAULT_QUALITY = 0.9  # 0-1, as supplied by module contexts
OUTPUT_FORMAT = 'JPEG'
SUPPORTED_OUTPUT_FORMATS = ['JPEG', 'WEBP', 'PNG']
CONTENT_TYPE_BY_FORMAT = {
    'JPEG': 'image/jpeg',
    'WEBP': 'image/webp',
    'PNG': 'image/png'
}

# === CROPPING ===
DEFAULT_ZOOM_RANGE = (1.0, 3.0)
ZOOM_STEP = 0.1
ROTATION_STEP = 90
PROXY_IMAGE_WIDTH = 700

# === STAGING ===
HANDLE_PREFIX = 'temp_'
STAGED_MAX_AGE = 24 * 60 * 60  # seconds

# === MODULE CONTEXTS ===
# Per-module image requirements, consumed as-is by contexts.get_context()
MODULE_CONTEXTS = {
    'venues': {
        'min_width': 1080, 'min_height': 1080, 'aspect_ratio': 1,
        'quality': 0.9, 'allow_rotation': True, 'allow_zoom': True,
        'zoom_range': (1, 3)
    },
    'events': {
        'min_width': 1080, 'min_height': 1080, 'aspect_ratio': 1,
        'quality': 0.9, 'allow_rotation': True, 'allow_zoom': True,
        'zoom_range': (1, 3)
    },
    'restaurants': {
        'min_width': 1080, 'min_height': 1080, 'aspect_ratio': 1,
        'quality': 0.9, 'allow_rotation': True, 'allow_zoom': True,
        'zoom_range': (1, 3)
    },
    'arts-groups': {
        'min_width': 1080, 'min_height': 1080, 'aspect_ratio': 1,
        'quality': 0.9, 'allow_rotation': True, 'allow_zoom': True,
        'zoom_range': (1, 3)
    },
    'profile': {
        'min_width': 400, 'min_height': 400, 'aspect_ratio': 1,
        'max_file_size': 5 * 1024 * 1024, 'quality': 0.8,
        'allow_rotation': True, 'allow_zoom': True, 'zoom_range': (1, 2)
    },
    'news': {
        'min_width': 1200, 'min_height': 628, 'aspect_ratio': 1200 / 628,
        'quality': 0.9, 'allow_rotation': True, 'allow_zoom': True,
        'zoom_range': (1, 3)
    },
    'banners-ros': {
        'min_width': 300, 'min_height': 600, 'aspect_ratio': 1 / 2,
        'quality': 0.9, 'module': 'banners'
    },
    'banners-premium': {
        'min_width': 970, 'min_height': 250, 'aspect_ratio': 97 / 25,
        'quality': 0.9, 'module': 'banners'
    },
    'banners-blue': {
        'min_width': 350, 'min_height': 350, 'aspect_ratio': 1,
        'quality': 0.9, 'module': 'banners'
    },
    'banners-green': {
        'min_width': 970, 'min_height': 250, 'aspect_ratio': 97 / 25,
        'quality': 0.9, 'module': 'banners'
    },
    'banners-red': {
        'min_width': 300, 'min_height': 600, 'aspect_ratio': 300 / 600,
        'quality': 0.9, 'module': 'banners'
    },
    'banners-escoop': {
        'min_width': 970, 'min_height': 250, 'aspect_ratio': 97 / 25,
        'quality': 0.9, 'module': 'banners'
    },
    'banners': {
        'min_width': 970, 'min_height': 250, 'aspect_ratio': 970 / 250,
        'quality': 0.9
    },
    'dedicated': {
        'min_width': 700, 'min_height': 100, 'aspect_ratio': None,
        'quality': 1.0
    },
    'marquee-desktop': {
        'min_width': 1920, 'min_height': 600, 'aspect_ratio': 1920 / 600,
        'quality': 0.9, 'module': 'marquee'
    },
    'marquee-mobile': {
        'min_width': 768, 'min_height': 432, 'aspect_ratio': 768 / 432,
        'quality': 0.9, 'module': 'marquee'
    }
}

# === GRANT ISSUER ===
GRANT_ENDPOINT = os.getenv('IMAGESTAGE_GRANT_URL', '')
GRANT_REQUEST_TIMEOUT = 30  # seconds

# === PATHS ===
def get_project_root() -> Path:
    """Get project root directory"""
    return Path(__file__).parent

def get_contexts_file() -> Path:
    """Get optional JSON file with module context overrides"""
    return Path(os.getenv('IMAGESTAGE_CONTEXTS_FILE', get_project_root() / 'contexts.json'))

# === LOGGING ===
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_LEVEL = os.getenv('IMAGESTAGE_LOG_LEVEL', 'INFO')
LOG_FILE = 'imagestage.log'
