"""
Editor Settings
===============

Runtime configuration for the editing client. Values default to the
constants in snapedit.core.config, can be resolved from the environment
with EditorConfig.from_env(), and are persisted between runs by
snapedit.utils.config_manager.
"""

import os
from dataclasses import dataclass
from typing import Any, Optional

from snapedit.core import config


@dataclass
class EditorConfig:
    """
    Configuration for the remote editing service and the offline queue.

    Attributes:
        api_key: Bearer token for the remote service
        endpoint: Base URL of the remote service
        model: Model identifier sent with every edit
        timeout: Per-attempt network timeout in seconds
        max_resolution: Advertised resolution budget (informational)
        platform: Value of the X-Platform identification header
        client_version: Value of the X-Version identification header
        offline_storage_dir: Directory used to persist the offline queue
                             (empty = queue is kept in memory only)
    """
    api_key: str = ""
    endpoint: str = config.DEFAULT_ENDPOINT
    model: str = config.DEFAULT_MODEL
    timeout: float = config.NETWORK_TIMEOUT_SECONDS
    max_resolution: str = config.MAX_RESOLUTION
    platform: str = config.PLATFORM_NAME
    client_version: str = config.CLIENT_VERSION
    offline_storage_dir: str = ""

    @classmethod
    def from_env(cls, **overrides: Optional[Any]) -> "EditorConfig":
        """
        Build a configuration from environment variables.

        Explicit keyword overrides win over the environment; None overrides
        are ignored.
        """
        settings = cls(
            api_key=os.environ.get(config.ENV_API_KEY, "").strip(),
            endpoint=os.environ.get(config.ENV_ENDPOINT, config.DEFAULT_ENDPOINT),
            offline_storage_dir=os.environ.get(config.ENV_OFFLINE_DIR, ""),
        )
        for name, value in overrides.items():
            if value is None:
                continue
            if not hasattr(settings, name):
                raise TypeError(f"Unknown EditorConfig field: {name}")
            setattr(settings, name, value)
        return settings
