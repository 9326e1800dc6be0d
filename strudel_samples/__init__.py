"""
Strudel Samples

Downloads, converts and caches the sample banks and General MIDI
soundfonts a Strudel pattern refers to, keeps the pitch metadata needed
to play them through SuperDirt, and tells SuperDirt to reload.
"""

__version__ = "0.1.0"

from .bank_metadata import BankMetadata, BankRegistry, resolve_target_midi
from .classifier import Classification, SoundKind, classify, strip_index
from .code_scanner import BankUsage, extract_bank_usage, extract_sound_names, tokenize_mini
from .config_loader import ConfigLoader, ConfigLoadError, get_config_loader
from .context import SampleContext
from .drum_machines import AliasEntry, DrumMachineCatalog, DrumMachineMatch
from .on_demand import OnDemandLoader
from .sample_manager import (
    LoadResult,
    ManifestError,
    NetworkError,
    SampleLoadError,
    SampleManager,
    UnsupportedFormatError,
)
from .soundfont_loader import SoundfontLoader
from .transcoder import Transcoder, TranscoderError

__all__ = [
    # Pitch metadata
    "BankMetadata",
    "BankRegistry",
    "resolve_target_midi",

    # Classification
    "Classification",
    "SoundKind",
    "classify",
    "strip_index",
    "AliasEntry",
    "DrumMachineCatalog",
    "DrumMachineMatch",

    # Code scanning
    "BankUsage",
    "extract_bank_usage",
    "extract_sound_names",
    "tokenize_mini",

    # Loading
    "SampleManager",
    "LoadResult",
    "SoundfontLoader",
    "Transcoder",
    "OnDemandLoader",
    "SampleContext",

    # Configuration
    "ConfigLoader",
    "get_config_loader",

    # Errors
    "ConfigLoadError",
    "SampleLoadError",
    "NetworkError",
    "ManifestError",
    "UnsupportedFormatError",
    "TranscoderError",
]
