"""
Bank Metadata - Pitch information for sample banks

Sample banks come in two shapes:
1. Pitched (keyed by note name): {"A0": "A0v8.mp3", "C1": "C1v8.mp3"}
   - A note/frequency has to be mapped to a sample index (n) and a
     playback speed that makes up the remaining pitch difference
2. Non-pitched (lists): ["kick.wav", "snare.wav"]
   - n is used directly as the sample index

SuperDirt only understands "n + speed", so the registry keeps, for every
pitched bank, the MIDI note of each sample index and performs the
nearest-neighbour lookup the Strudel web engine does.
"""

import logging
import math
import re
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .server.config import NATIVE_FORMATS
from .utils import freq_to_midi, is_note, note_to_midi, parse_note_name, semitones_to_speed

logger = logging.getLogger(__name__)


# Note used when a value carries no pitch (C2, same as superdough)
DEFAULT_TARGET_MIDI = 36

# Value fields that conflict with n/speed once a pitch mapping is applied
PITCH_FIELDS = ('note', 'midinote', 'freq')

# Soundfont cache files: 000_note24.wav -> index 0, MIDI 24
_SOUNDFONT_FILE_RE = re.compile(r'^(\d+)_note(\d+)(\.[A-Za-z0-9]+)$')

SampleList = Union[List[str], Mapping[str, Any]]


@dataclass
class BankMetadata:
    """Pitch metadata for one sample bank."""
    name: str
    is_pitched: bool
    sample_count: int
    sample_midi_notes: Optional[List[int]] = None  # index n -> MIDI note
    is_soundfont: bool = False

    @property
    def midi_range(self) -> Optional[Tuple[int, int]]:
        if not self.sample_midi_notes:
            return None
        return (min(self.sample_midi_notes), max(self.sample_midi_notes))


def pitched_keys(samples: Mapping[str, Any]) -> Optional[List[Tuple[int, str]]]:
    """
    Note-name keys of a sample map, ordered by pitch.

    A map counts as pitched when more than half of its non-underscore
    keys are note names and at least two of them are. Keys that do not
    parse are left out of the result.

    Returns:
        (midi, key) pairs sorted by MIDI note, or None if not pitched
    """
    keys = [k for k in samples if not k.startswith('_')]

    parsed: List[Tuple[int, str]] = []
    for key in keys:
        midi = parse_note_name(key)
        if midi is not None:
            parsed.append((midi, key))

    if len(parsed) > len(keys) * 0.5 and len(parsed) >= 2:
        parsed.sort(key=lambda entry: entry[0])
        return parsed
    return None


def nearest_sample(sample_midi_notes: List[int], target_midi: float) -> int:
    """
    Index of the sample closest to target_midi.

    Linear scan; the first sample wins on equal distance.
    """
    closest_index = 0
    closest_distance = abs(sample_midi_notes[0] - target_midi)
    for i in range(1, len(sample_midi_notes)):
        distance = abs(sample_midi_notes[i] - target_midi)
        if distance < closest_distance:
            closest_distance = distance
            closest_index = i
    return closest_index


def resolve_target_midi(value: Mapping[str, Any]) -> float:
    """
    Get the MIDI note a hap value asks for.

    Precedence matches superdough's so the output sounds the same as in
    the browser: a positive freq, then a numeric note, then a string note, then
    midinote, then the default of 36.

    Args:
        value: Hap value dictionary

    Returns:
        Target MIDI note (may be fractional for numeric notes)
    """
    freq = value.get('freq')
    note = value.get('note')
    midinote = value.get('midinote')

    if _is_number(freq) and math.isfinite(freq) and freq > 0:
        return freq_to_midi(freq)
    if _is_number(note):
        return note
    if isinstance(note, str):
        parsed = parse_note_name(note)
        if parsed is not None:
            return parsed
        if is_note(note):
            return note_to_midi(note)
        return DEFAULT_TARGET_MIDI
    if _is_number(midinote):
        return midinote
    return DEFAULT_TARGET_MIDI


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class BankRegistry:
    """
    Registry of bank pitch metadata.

    Entries are created the first time a bank's manifest (or soundfont
    cache) is seen and are only removed by clear(). Safe to share
    between loader threads.

    Example:
        ```python
        registry = BankRegistry()
        registry.register("piano", {"A0": "a0.mp3", "A1": "a1.mp3"})
        registry.nearest_sample_and_speed("piano", 27)  # (0, 1.414...)
        ```
    """

    def __init__(self):
        self._banks: Dict[str, BankMetadata] = {}
        self._lock = threading.Lock()

    def register(self, bank_name: str, samples: SampleList) -> BankMetadata:
        """
        Register a bank from its manifest entry.

        Args:
            bank_name: Name of the bank (e.g., "piano")
            samples: List of filenames, or mapping of note name -> filename

        Returns:
            The registered BankMetadata
        """
        if isinstance(samples, Mapping):
            metadata = self._from_mapping(bank_name, samples)
        else:
            metadata = BankMetadata(
                name=bank_name,
                is_pitched=False,
                sample_count=len(samples),
            )

        with self._lock:
            self._banks[bank_name] = metadata
        return metadata

    def _from_mapping(self, bank_name: str, samples: Mapping[str, Any]) -> BankMetadata:
        pitched = pitched_keys(samples)
        if pitched is None:
            keys = [k for k in samples if not k.startswith('_')]
            return BankMetadata(name=bank_name, is_pitched=False, sample_count=len(keys))

        midi_notes = [midi for midi, _ in pitched]
        logger.info(
            "Registered pitched bank '%s': %d samples, MIDI %d-%d",
            bank_name, len(midi_notes), midi_notes[0], midi_notes[-1],
        )
        return BankMetadata(
            name=bank_name,
            is_pitched=True,
            sample_count=len(midi_notes),
            sample_midi_notes=midi_notes,
        )

    def register_soundfont_files(
        self,
        bank_name: str,
        filenames: Iterable[str],
    ) -> Optional[BankMetadata]:
        """
        Register a soundfont bank from its cached files.

        Soundfont caches are named like 000_note24.wav, 001_note51.wav,
        where the number after "note" is the MIDI pitch of that sample.

        Args:
            bank_name: Name of the bank (e.g., "gm_violin")
            filenames: Filenames in the bank directory

        Returns:
            BankMetadata, or None if fewer than two files match
        """
        samples: List[Tuple[int, int]] = []
        for filename in filenames:
            match = _SOUNDFONT_FILE_RE.match(filename)
            if match and match.group(3).lower() in NATIVE_FORMATS:
                samples.append((int(match.group(1)), int(match.group(2))))

        if len(samples) < 2:
            return None

        samples.sort()
        midi_notes = [midi for _, midi in samples]
        metadata = BankMetadata(
            name=bank_name,
            is_pitched=True,
            sample_count=len(midi_notes),
            sample_midi_notes=midi_notes,
            is_soundfont=True,
        )

        with self._lock:
            self._banks[bank_name] = metadata

        logger.info(
            "Registered soundfont '%s': %d samples, MIDI %d-%d",
            bank_name, len(midi_notes), min(midi_notes), max(midi_notes),
        )
        return metadata

    def get(self, bank_name: str) -> Optional[BankMetadata]:
        with self._lock:
            return self._banks.get(bank_name)

    def is_pitched(self, bank_name: str) -> bool:
        metadata = self.get(bank_name)
        return bool(metadata and metadata.is_pitched)

    def is_soundfont(self, bank_name: str) -> bool:
        metadata = self.get(bank_name)
        return bool(metadata and metadata.is_soundfont)

    def banks(self) -> List[str]:
        with self._lock:
            return list(self._banks)

    def clear(self) -> None:
        """Remove all metadata (test reset)."""
        with self._lock:
            self._banks.clear()

    def nearest_sample_and_speed(
        self,
        bank_name: str,
        target_midi: float,
    ) -> Optional[Tuple[int, float]]:
        """
        Sample index and speed that play target_midi on a pitched bank.

        speed = 2^((target - sample) / 12)

        Args:
            bank_name: The sample bank name
            target_midi: The MIDI note to play

        Returns:
            (n, speed), or None if the bank is unknown or not pitched
        """
        metadata = self.get(bank_name)
        if metadata is None or not metadata.is_pitched or not metadata.sample_midi_notes:
            return None

        notes = metadata.sample_midi_notes
        index = nearest_sample(notes, target_midi)
        return index, semitones_to_speed(target_midi - notes[index])

    def apply_pitch_mapping(self, value: Dict[str, Any]) -> Dict[str, Any]:
        """
        Rewrite a hap value for SuperDirt if it plays a pitched bank.

        Sets n to the nearest sample, multiplies the pitch correction into
        any existing speed and drops note/midinote/freq, which SuperDirt
        would otherwise apply on top.

        Args:
            value: The hap value

        Returns:
            A new dict with n and speed, or the original value untouched
        """
        bank_name = value.get('s') or value.get('sound')
        if not bank_name or not self.is_pitched(bank_name):
            return value

        result = self.nearest_sample_and_speed(bank_name, resolve_target_midi(value))
        if result is None:
            return value

        n, speed = result
        mapped = dict(value)
        mapped['n'] = n
        existing_speed = mapped.get('speed')
        mapped['speed'] = (1 if existing_speed is None else existing_speed) * speed
        for field_name in PITCH_FIELDS:
            mapped.pop(field_name, None)
        return mapped
