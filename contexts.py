"""
ImageStage v1.0 - Context Registry
==================================
Resolve module names to ImageContext objects
"""

import json
import re
from typing import Dict, IO, List, Optional
import config
from logger import get_logger
from models import ImageContext

logger = get_logger(__name__)

_overrides: Dict[str, dict] = {}

def _snake_keys(settings: dict) -> dict:
    """Normalize camelCase JSON keys (minWidth) to the snake_case used in config"""
    return {re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower(): value for key, value in settings.items()}

def load_contexts_from_json(json_file: IO) -> Dict[str, ImageContext]:
    """
    Load module context overrides from a JSON object of {name: settings}

    Every entry is validated before any is applied.

    Raises:
        ValueError: Malformed JSON or an entry violating the context invariants
    """
    try:
        data = json.load(json_file)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid contexts file: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Contexts file must contain a JSON object")

    contexts, merged = {}, {}
    for name, settings in data.items():
        if not isinstance(settings, dict):
            raise ValueError(f"Context '{name}' must be a JSON object")
        merged[name] = {**config.MODULE_CONTEXTS.get(name, {}), **_snake_keys(settings)}
        try:
            contexts[name] = ImageContext.from_dict(name, merged[name])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Context '{name}' is incomplete: {e}") from e

    _overrides.update(merged)
    logger.info(f"Loaded {len(contexts)} context overrides")
    return contexts

def load_default_overrides() -> None:
    """Apply the optional contexts file from config, if present"""
    path = config.get_contexts_file()
    if not path.exists():
        return
    with open(path, encoding='utf-8') as f:
        load_contexts_from_json(f)

def reset_overrides() -> None:
    _overrides.clear()

def available_contexts() -> List[str]:
    return sorted(set(config.MODULE_CONTEXTS) | set(_overrides))

def get_context(name: str, **overrides) -> ImageContext:
    """
    Resolve a module name to its ImageContext

    Keyword overrides (snake_case) are applied last, e.g. a banner slot
    configured for another size.

    Raises:
        KeyError: Unknown module name
    """
    settings: Optional[dict] = _overrides.get(name) or config.MODULE_CONTEXTS.get(name)
    if settings is None:
        raise KeyError(f"Unknown image context: {name}")
    return ImageContext.from_dict(name, {**settings, **overrides})
