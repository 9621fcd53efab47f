"""
ImageStage v1.0 - Logging Module
================================
One 'imagestage' root logger, per-module children
"""

import logging
import sys
from typing import Optional
import config

ROOT_NAME = "imagestage"

def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter('%(levelname)s [%(name)s] %(message)s'))
    return handler

def _file_handler() -> Optional[logging.Handler]:
    """Debug-level file log next to the app; None when the file can't be opened"""
    try:
        handler = logging.FileHandler(config.get_project_root() / config.LOG_FILE, encoding='utf-8')
    except OSError as e:
        print(f"Warning: Could not setup file logging: {e}")
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(config.LOG_FORMAT))
    return handler

class StagingLogger:
    """Owns the root logger; modules get children that share its handlers"""

    _root: Optional[logging.Logger] = None

    @classmethod
    def root(cls) -> logging.Logger:
        if cls._root is None:
            cls._root = cls._setup()
        return cls._root

    @classmethod
    def _setup(cls) -> logging.Logger:
        root = logging.getLogger(ROOT_NAME)
        root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
        root.propagate = False

        # Streamlit reruns re-import modules; keep the first handler set
        if root.handlers:
            return root

        root.addHandler(_console_handler())
        file_handler = _file_handler()
        if file_handler is not None:
            root.addHandler(file_handler)
        return root

    @classmethod
    def get_logger(cls, name: str = ROOT_NAME) -> logging.Logger:
        root = cls.root()
        if name in (ROOT_NAME, "__main__"):
            return root
        return root.getChild(name.rsplit('.', 1)[-1])

def get_logger(name: str = ROOT_NAME) -> logging.Logger:
    """Get logger instance"""
    return StagingLogger.get_logger(name)
