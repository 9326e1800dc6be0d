"""
Server Module for the Strudel sample loader

Provides the SuperDirt side of the loader: configuration, the OSC
control channel and the background load pool.

Quick Start:
    ```python
    from strudel_samples.server import ReloadNotifier, LoaderConfig
    notifier = ReloadNotifier(LoaderConfig.from_env())
    notifier.connect()
    notifier.notify_reload("/path/to/cache", timeout_ms=5000)
    ```

Components:
    - LoaderConfig: Configuration management
    - ReloadNotifier: OSC control channel to SuperDirt
    - InFlightLoads: Deduplicated background loads

Protocol:
    See config.py for OSCAddresses defining the message protocol.
"""

from .config import (
    LoaderConfig,
    OSCAddresses,
    ErrorCode,
    NATIVE_FORMATS,
    CONVERTIBLE_FORMATS,
    DEFAULT_CONFIG,
)

from .worker import InFlightLoads

from .osc_client import (
    ReloadNotifier,
    superdirt_startup_code,
)

__all__ = [
    # Configuration
    "LoaderConfig",
    "OSCAddresses",
    "ErrorCode",
    "NATIVE_FORMATS",
    "CONVERTIBLE_FORMATS",
    "DEFAULT_CONFIG",

    # Workers
    "InFlightLoads",

    # Control channel
    "ReloadNotifier",
    "superdirt_startup_code",
]
