"""
Loader Configuration Module

Centralized configuration for the sample loader and the SuperDirt
control channel. All constants and defaults are defined here for easy
modification.
"""

from dataclasses import dataclass
from typing import Optional
from pathlib import Path
import os


# Formats SuperDirt loads directly (no conversion needed)
NATIVE_FORMATS = (".wav", ".aif", ".aiff", ".aifc")

# Formats converted to WAV with the external transcoder
CONVERTIBLE_FORMATS = (".mp3", ".ogg", ".m4a", ".flac", ".webm")

STRUDEL_CDN = "https://strudel.b-cdn.net"
SOUNDFONT_URL = "https://felixroos.github.io/webaudiofontdata/sound"
GITHUB_RAW_URL = "https://raw.githubusercontent.com"


def default_cache_dir() -> str:
    """Platform data directory for the sample cache (XDG aware)."""
    data_home = os.getenv("XDG_DATA_HOME")
    if data_home:
        return str(Path(data_home) / "strudel-samples")
    return str(Path.home() / ".local" / "share" / "strudel-samples")


@dataclass
class LoaderConfig:
    """
    Configuration for the sample loader.

    Attributes:
        cache_dir: Root of the on-disk cache (one subdirectory per bank)
        cdn_base: Base URL of the Strudel sample CDN
        soundfont_url: Base URL of the WebAudioFont data files
        superdirt_host: Host SuperDirt listens on
        superdirt_port: Port SuperDirt listens on
        reply_host: Local address for the confirmation listener
        transcoder: Transcoder executable (ffmpeg)
        sample_rate: Sample rate of converted files
        channels: Channel count of converted files
        http_timeout: Timeout for a single HTTP request (seconds)
        bank_window: Characters searched around bank() calls for s() calls
        max_workers: Concurrent on-demand loads
        verbose: Enable verbose logging
    """
    # Paths
    cache_dir: Optional[str] = None

    # Remote sources
    cdn_base: str = STRUDEL_CDN
    soundfont_url: str = SOUNDFONT_URL

    # Network Configuration
    superdirt_host: str = "127.0.0.1"
    superdirt_port: int = 57120
    reply_host: str = "127.0.0.1"

    # Conversion
    transcoder: str = "ffmpeg"
    sample_rate: int = 44100
    channels: int = 2

    # Loading
    http_timeout: float = 30.0
    bank_window: int = 100
    max_workers: int = 4

    # Logging
    verbose: bool = False
    log_file: Optional[str] = None

    def __post_init__(self):
        """Set computed defaults after initialization."""
        if self.cache_dir is None:
            self.cache_dir = default_cache_dir()

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir)

    @classmethod
    def from_env(cls) -> "LoaderConfig":
        """
        Create config from environment variables.

        Environment Variables:
            STRUDEL_SAMPLES_CACHE_DIR: Cache root directory
            STRUDEL_SAMPLES_CDN: Sample CDN base URL
            STRUDEL_SAMPLES_SOUNDFONT_URL: WebAudioFont base URL
            STRUDEL_SAMPLES_HOST: SuperDirt host
            STRUDEL_SAMPLES_PORT: SuperDirt port
            STRUDEL_SAMPLES_REPLY_HOST: Confirmation listener address
            STRUDEL_SAMPLES_TRANSCODER: Transcoder executable
            STRUDEL_SAMPLES_HTTP_TIMEOUT: HTTP timeout in seconds
            STRUDEL_SAMPLES_MAX_WORKERS: Concurrent loads
            STRUDEL_SAMPLES_VERBOSE: Enable verbose mode (1/true/yes)
            STRUDEL_SAMPLES_LOG_FILE: Also log to this file
        """
        return cls(
            cache_dir=os.getenv("STRUDEL_SAMPLES_CACHE_DIR"),
            cdn_base=os.getenv("STRUDEL_SAMPLES_CDN", STRUDEL_CDN),
            soundfont_url=os.getenv("STRUDEL_SAMPLES_SOUNDFONT_URL", SOUNDFONT_URL),
            superdirt_host=os.getenv("STRUDEL_SAMPLES_HOST", "127.0.0.1"),
            superdirt_port=int(os.getenv("STRUDEL_SAMPLES_PORT", 57120)),
            reply_host=os.getenv("STRUDEL_SAMPLES_REPLY_HOST", "127.0.0.1"),
            transcoder=os.getenv("STRUDEL_SAMPLES_TRANSCODER", "ffmpeg"),
            http_timeout=float(os.getenv("STRUDEL_SAMPLES_HTTP_TIMEOUT", 30.0)),
            max_workers=int(os.getenv("STRUDEL_SAMPLES_MAX_WORKERS", 4)),
            verbose=os.getenv("STRUDEL_SAMPLES_VERBOSE", "").lower() in ("1", "true", "yes"),
            log_file=os.getenv("STRUDEL_SAMPLES_LOG_FILE"),
        )


# OSC Message Addresses (Protocol Definition)
class OSCAddresses:
    """
    OSC address constants for the SuperDirt control channel.

    Python → SuperDirt:
        /strudel/loadSamples - Reload sample folders (path, reply_port)

    SuperDirt → Python:
        /strudel/samplesLoaded - Reload finished (path)
    """

    LOAD_SAMPLES = "/strudel/loadSamples"
    SAMPLES_LOADED = "/strudel/samplesLoaded"


# Error Codes
class ErrorCode:
    """
    Exit codes for the command line interface.
    """
    OK = 0
    UNKNOWN = 1
    INVALID_ARGUMENT = 2

    # Loading errors (1x)
    NOTHING_LOADED = 10
    MANIFEST_FAILED = 11

    # Control channel errors (2x)
    NOT_CONFIRMED = 20


# Default configuration instance
DEFAULT_CONFIG = LoaderConfig()
