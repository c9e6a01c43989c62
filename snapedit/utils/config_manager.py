"""
Configuration Persistence
=========================

This module manages the serialization and deserialization of the editor
configuration so that the endpoint, model and API key survive between runs.

Key Responsibilities:
---------------------
- File-System Persistence: Stores config in a hidden JSON file in the
  user's home directory (`~/.snapedit_config.json`).
- State Synchronization: Maps JSON keys onto the attributes of the
  `EditorConfig` dataclass.
- Security Logging: Records save/load events through the logger while
  automatically redacting the API key.
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from snapedit.core.settings import EditorConfig
from snapedit.utils.logger import log_config

CONFIG_PATH = Path.home() / ".snapedit_config.json"


def save_config(settings: EditorConfig, path: Optional[Path] = None) -> bool:
    """
    Persist the editor configuration as pretty-printed JSON.

    Args:
        settings: The configuration to be saved.
        path: Destination file (defaults to CONFIG_PATH).

    Returns:
        True if the file was written.
    """
    logger = logging.getLogger(__name__)
    path = Path(path) if path else CONFIG_PATH

    try:
        data = {"editor": asdict(settings)}

        log_config("Saving Configuration", data, logger)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

        logger.info(f"Configuration saved successfully to {path}")
        return True

    except OSError as e:
        logger.error(f"Failed to save configuration: {e}", exc_info=True)
        return False


def load_config(settings: EditorConfig, path: Optional[Path] = None) -> EditorConfig:
    """
    Load the JSON configuration file and apply it onto `settings`.

    Only known fields are applied; unknown keys are ignored. A missing or
    corrupted file leaves `settings` unchanged.

    Args:
        settings: The EditorConfig to be populated.
        path: Source file (defaults to CONFIG_PATH).

    Returns:
        The same `settings` object, for chaining.
    """
    logger = logging.getLogger(__name__)
    path = Path(path) if path else CONFIG_PATH

    if not path.exists():
        logger.info(f"No existing configuration file found at {path}")
        return settings

    try:
        logger.info(f"Loading configuration from {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        editor_data = data.get("editor", {}) if isinstance(data, dict) else None
        if not isinstance(editor_data, dict):
            logger.error(f"Configuration file {path} does not hold an editor section object, ignoring it")
            return settings

        log_config("Loaded Configuration", data, logger)

        for k, v in editor_data.items():
            if hasattr(settings, k):
                if k == "api_key" and isinstance(v, str):
                    v = v.strip()
                setattr(settings, k, v)
        logger.debug(f"Editor configuration updated: endpoint={settings.endpoint}, model={settings.model}")

        logger.info("Configuration loaded and applied successfully")

    except json.JSONDecodeError as e:
        logger.error(f"Configuration file is corrupted: {e}", exc_info=True)
    except OSError as e:
        logger.error(f"Failed to load configuration: {e}", exc_info=True)

    return settings
