"""Configuration module for Network Scanner.

Provides centralized configuration, logging, exceptions, and utilities.
"""
from config.constants import (
    ALLOWED_SUBPROCESS_COMMANDS,
    INTERVALS,
    NETWORK,
    STORAGE,
    Intervals,
    NetworkConfig,
    StorageConfig,
)
from config.exceptions import (
    ConfigurationError,
    DiscoveryRegistrationError,
    NetworkScannerError,
    ProbeError,
    ResolutionError,
    SourceUnavailableError,
    StaleListenerError,
    SubprocessError,
)
from config.logging_config import LogContext, get_logger, setup_logging
from config.subprocess_cache import SubprocessCache, get_subprocess_cache, safe_run
from config.settings import ScanSettings, SettingsManager, get_settings_manager

__all__ = [
    # Constants
    "INTERVALS",
    "NETWORK",
    "STORAGE",
    "Intervals",
    "NetworkConfig",
    "StorageConfig",
    "ALLOWED_SUBPROCESS_COMMANDS",
    # Exceptions
    "NetworkScannerError",
    "SourceUnavailableError",
    "ProbeError",
    "DiscoveryRegistrationError",
    "ResolutionError",
    "StaleListenerError",
    "ConfigurationError",
    "SubprocessError",
    # Logging
    "setup_logging",
    "get_logger",
    "LogContext",
    # Subprocess
    "SubprocessCache",
    "safe_run",
    "get_subprocess_cache",
    # Settings
    "ScanSettings",
    "SettingsManager",
    "get_settings_manager",
]
