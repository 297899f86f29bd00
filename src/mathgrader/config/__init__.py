"""
Configuration module for the math grading pipeline.

Provides settings, constants, the provider registry, and logging configuration.
"""

from mathgrader.config.settings import get_settings, reload_settings, Settings
from mathgrader.config.logging_config import (
    setup_structured_logging,
    setup_from_settings,
    get_logger,
)
from mathgrader.config.providers import (
    ProviderConfig,
    PROVIDER_REGISTRY,
    get_provider_config,
)

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings',
    'setup_structured_logging',
    'setup_from_settings',
    'get_logger',
    'ProviderConfig',
    'PROVIDER_REGISTRY',
    'get_provider_config',
]
