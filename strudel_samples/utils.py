"""
Utility functions and constants for pitch handling.

Provides:
- Note name parsing (sample-map keys and pattern note values)
- MIDI / frequency conversions
- Filename sanitizing for cached samples
"""

import math
import re
from typing import Optional


# =============================================================================
# MUSIC THEORY
# =============================================================================

# Semitone offset of each natural note from C
SEMITONES = {'C': 0, 'D': 2, 'E': 4, 'F': 5, 'G': 7, 'A': 9, 'B': 11}

# Accidentals accepted by the general parser ('s' and 'f' are mini-notation spellings)
ACCIDENTALS = {'#': 1, 's': 1, 'b': -1, 'f': -1}

DEFAULT_OCTAVE = 3
A4_MIDI = 69
A4_FREQ = 440.0

# Sample-map keys: A0, C#4, Bb3, Ds1 (D#1)
_SAMPLE_KEY_RE = re.compile(r'^([A-Ga-g])([#b]?)(-?\d+)$')
_SHARP_S_RE = re.compile(r's(\d)')

# Pattern note values: c, eb3, c##4, fs2
_NOTE_RE = re.compile(r'^([a-gA-G])([#bsf]*)(-?[0-9]*)$')

_UNSAFE_CHARS_RE = re.compile(r'[^a-zA-Z0-9_-]')


# =============================================================================
# NOTE / PITCH FUNCTIONS
# =============================================================================

def parse_note_name(name: str) -> Optional[int]:
    """
    Parse a sample-map key as a note name.

    Handles formats like A0, C1, Bb3 and the 's' spelling of sharps
    used by some sample maps (Ds1 == D#1, Fs4 == F#4).

    Args:
        name: Key from a note-keyed sample map

    Returns:
        MIDI note number, or None if the key is not a note name

    Examples:
        parse_note_name('A0') -> 21
        parse_note_name('Ds1') -> 27
    """
    normalized = _SHARP_S_RE.sub(r'#\1', name, count=1)
    match = _SAMPLE_KEY_RE.match(normalized)
    if not match:
        return None

    letter, accidental, octave = match.groups()
    semitone = SEMITONES[letter.upper()]
    if accidental == '#':
        semitone += 1
    elif accidental == 'b':
        semitone -= 1

    # C-1 = 0, C4 = 60
    return (int(octave) + 1) * 12 + semitone


def is_note(name: str) -> bool:
    """Check whether a string is a note value the general parser accepts."""
    return isinstance(name, str) and _NOTE_RE.match(name) is not None


def note_to_midi(note: str, default_octave: int = DEFAULT_OCTAVE) -> int:
    """
    Convert a pattern note value to a MIDI note number.

    Accepts any run of accidentals ('#'/'s' raise, 'b'/'f' lower) and an
    optional octave, defaulting to octave 3.

    Args:
        note: Note value like 'c', 'eb3', 'f#4', 'as2'
        default_octave: Octave used when the value has none

    Returns:
        MIDI note number

    Raises:
        ValueError: If the value is not a note
    """
    match = _NOTE_RE.match(note) if isinstance(note, str) else None
    if not match:
        raise ValueError(f'not a note: "{note}"')

    letter, accidentals, octave = match.groups()
    offset = sum(ACCIDENTALS[char] for char in accidentals)
    octave_num = int(octave) if octave not in ('', '-') else default_octave
    return (octave_num + 1) * 12 + SEMITONES[letter.upper()] + offset


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (0.5 -> 1, -0.5 -> 0)."""
    return int(math.floor(value + 0.5))


def freq_to_midi(freq: float) -> int:
    """Nearest MIDI note for a frequency in Hz (A4 = 440 Hz = 69)."""
    return round_half_up(12 * math.log2(freq / A4_FREQ) + A4_MIDI)


def midi_to_freq(midi_note: float) -> float:
    """Frequency in Hz of a (possibly fractional) MIDI note."""
    return A4_FREQ * 2 ** ((midi_note - A4_MIDI) / 12)


def semitones_to_speed(semitones: float) -> float:
    """Playback speed ratio that transposes a sample by the given semitones."""
    return 2 ** (semitones / 12)


# =============================================================================
# FILE NAMES
# =============================================================================

def sanitize_stem(stem: str) -> str:
    """Replace characters outside [A-Za-z0-9_-] with underscores."""
    return _UNSAFE_CHARS_RE.sub('_', stem)


def indexed_filename(index: int, stem: str, extension: str) -> str:
    """
    Build a cache filename of the form NNN_<stem><ext>.

    SuperDirt orders samples in a folder by filename, so the zero-padded
    prefix fixes the sample index.
    """
    return f"{index:03d}_{sanitize_stem(stem)}{extension}"
