# pbd/config/__init__.py
from __future__ import annotations

from .config import BaseConfig, DevelopmentConfig, ProductionConfig, TestingConfig

CONFIG_BY_NAME = {
    "base": BaseConfig,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}

__all__ = [
    "CONFIG_BY_NAME",
    "BaseConfig",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
]
