"""
Pydantic schemas for remote sample manifests.

These models validate JSON downloaded from sample hosts before the
loader trusts it, so a malformed manifest fails as a whole with a
readable error instead of half-populating the cache.

Validation includes:
- Manifest root must be an object
- `_base` must be a URL string
- Banks must be a filename, a list of filenames, or a note-keyed object
- Alias files must map full bank names to short aliases
- Soundfont zones must carry integer key ranges and pitch
"""
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

from ..utils import round_half_up


BankEntry = Union[str, List[Any], Dict[str, Any]]


class SampleManifest(RootModel[Dict[str, Any]]):
    """Validated strudel.json style sample map.

    Keys starting with an underscore are metadata (`_base` is the root
    URL for relative filenames) and never name a bank.
    """

    @field_validator('root')
    @classmethod
    def validate_entries(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        base = v.get('_base')
        if base is not None and not isinstance(base, str):
            raise ValueError("_base must be a string")
        for key, entry in v.items():
            if key.startswith('_'):
                continue
            if not isinstance(entry, (str, list, dict)):
                raise ValueError(
                    f"Bank '{key}' must be a filename, a list or an object, "
                    f"got {type(entry).__name__}"
                )
        return v

    @property
    def base(self) -> Optional[str]:
        return self.root.get('_base')

    def banks(self) -> Dict[str, BankEntry]:
        """Bank entries with metadata keys removed; bare strings become one-file lists."""
        banks: Dict[str, BankEntry] = {}
        for key, entry in self.root.items():
            if key.startswith('_'):
                continue
            banks[key] = [entry] if isinstance(entry, str) else entry
        return banks


class AliasManifest(RootModel[Dict[str, str]]):
    """Validated alias file: full bank name -> short alias."""

    def inverted(self) -> List[Tuple[str, str]]:
        """(alias, full name) pairs in file order."""
        return [(alias, full_name) for full_name, alias in self.root.items()]


class SoundfontZoneSchema(BaseModel):
    """One zone of a WebAudioFont instrument.

    A zone maps a MIDI key range to a sample recorded at
    originalPitch (in cents).
    """

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    key_range_low: int = Field(..., alias='keyRangeLow')
    key_range_high: int = Field(..., alias='keyRangeHigh')
    original_pitch: float = Field(..., alias='originalPitch', description="Pitch in cents")
    file: Optional[str] = Field(default=None, description="Base64 encoded audio")
    sample_rate: Optional[int] = Field(default=None, alias='sampleRate')

    @property
    def midi(self) -> int:
        """MIDI note the sample was recorded at."""
        return round_half_up(self.original_pitch / 100)

    @property
    def is_usable(self) -> bool:
        """Zone has audio and a sane key range."""
        return bool(self.file) and self.key_range_high >= self.key_range_low


def validate_manifest(data: Any) -> SampleManifest:
    """Validate decoded manifest JSON.

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return SampleManifest.model_validate(data)


def validate_aliases(data: Any) -> AliasManifest:
    """Validate a decoded alias file.

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return AliasManifest.model_validate(data)
