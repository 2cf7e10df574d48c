"""Configuration for credential rotation runs."""

from .provider import ConfigProvider, EnvConfigProvider, RotationConfig

__all__ = ["ConfigProvider", "EnvConfigProvider", "RotationConfig"]
