"""
Sound-name classifier.

Decides where a sound name used in code can be downloaded from:
a General MIDI soundfont, a known static bank, or a drum machine voice.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Container, Mapping, Optional

from .drum_machines import DrumMachineCatalog


class SoundKind(Enum):
    """Where a sound comes from."""
    SOUNDFONT = "soundfont"
    KNOWN_STATIC_BANK = "known_static_bank"
    DRUM_MACHINE = "drum_machine"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Classification:
    """
    Classification of a single sound name.

    Attributes:
        name: The name as written (without :N)
        kind: Source of the sound
        full_bank_name: Cache bank for drum machine voices
        is_valid: False for drum machine voices missing from the sample map
    """
    name: str
    kind: SoundKind
    full_bank_name: Optional[str] = None
    is_valid: bool = True

    @property
    def bank_name(self) -> str:
        """Cache folder the sound lives in."""
        return self.full_bank_name or self.name


def strip_index(token: str) -> str:
    """Remove a sample index suffix: "bd:2" -> "bd"."""
    return token.split(":", 1)[0].strip()


def classify(
    name: str,
    soundfonts: Container[str],
    known_banks: Mapping[str, Any],
    drum_machines: Optional[DrumMachineCatalog] = None,
) -> Classification:
    """
    Classify a sound name.

    Soundfonts are checked first, then known banks, then drum machine
    aliases. Anything else is UNKNOWN, which is not an error: it may be
    a synth or a sample loaded some other way.

    Args:
        name: Sound name, already stripped of its :N index
        soundfonts: Names of the General MIDI instruments
        known_banks: Known static bank table
        drum_machines: Drum machine catalog (skipped when None or not loaded)

    Returns:
        Classification for the name
    """
    if name in soundfonts:
        return Classification(name, SoundKind.SOUNDFONT)

    if name in known_banks:
        return Classification(name, SoundKind.KNOWN_STATIC_BANK)

    if drum_machines is not None:
        match = drum_machines.match_sound(name)
        if match is not None:
            return Classification(
                name,
                SoundKind.DRUM_MACHINE,
                full_bank_name=match.full_bank_name,
                is_valid=match.is_valid,
            )

    return Classification(name, SoundKind.UNKNOWN)
