"""
Soundfont Loader - General MIDI instruments for SuperDirt

Downloads WebAudioFont instrument files, decodes the base64 audio of
each zone and stores one WAV per distinct pitch:

    <cache_dir>/gm_piano/000_note21.wav
    <cache_dir>/gm_piano/001_note33.wav
    <cache_dir>/gm_piano/_zones.json

The MIDI note in the filename is what lets the bank registry pitch
these banks without the original font data.
"""

import base64
import binascii
import json
import logging
import os
import re
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests
from pydantic import ValidationError

from .schemas import SoundfontZoneSchema
from .server.config import LoaderConfig
from .transcoder import Transcoder, TranscoderError

logger = logging.getLogger(__name__)


ZONES_FILE = "_zones.json"

# key: 'value' | key: "value" | key: number
_FIELD_RE = re.compile(
    r"""['"]?([A-Za-z_]\w*)['"]?\s*:\s*(?:'([^']*)'|"([^"]*)"|(-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?))"""
)
_ZONES_RE = re.compile(r"""['"]?zones['"]?\s*:\s*\[""")
_DATA_URI_RE = re.compile(r"^data:[^,]*;base64,")


def _split_objects(text: str, start: int) -> List[str]:
    """
    Top-level {...} objects of the array that opens just before start.

    Braces inside quoted strings are ignored; scanning stops at the
    closing bracket of the array.
    """
    objects = []
    depth = 0
    quote = None
    object_start = -1
    i = start
    while i < len(text):
        char = text[i]
        if quote:
            if char == "\\":
                i += 2
                continue
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "{":
            if depth == 0:
                object_start = i
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                objects.append(text[object_start:i + 1])
        elif char == "]" and depth == 0:
            break
        i += 1
    return objects


def _parse_fields(obj: str) -> Dict[str, Any]:
    # Nested arrays/objects (e.g. raw sample data) are not needed
    fields: Dict[str, Any] = {}
    for match in _FIELD_RE.finditer(obj):
        key, single, double, number = match.groups()
        if key in fields:
            continue
        if number is not None:
            fields[key] = float(number) if any(c in number for c in ".eE") else int(number)
        else:
            fields[key] = single if single is not None else double
    return fields


def parse_font_zones(text: str) -> List[SoundfontZoneSchema]:
    """
    Extract the zones of a WebAudioFont JS file.

    The files look like `var _tone_0000_X = {zones: [{...}, {...}]};`.
    Zones that fail validation are skipped.

    Args:
        text: Contents of the .js file

    Returns:
        Validated zones in file order
    """
    match = _ZONES_RE.search(text)
    if not match:
        return []

    zones = []
    for obj in _split_objects(text, match.end()):
        try:
            zones.append(SoundfontZoneSchema.model_validate(_parse_fields(obj)))
        except ValidationError as e:
            logger.debug("Skipping malformed zone: %s", e)
    return zones


def unique_zones(zones: Iterable[SoundfontZoneSchema]) -> List[SoundfontZoneSchema]:
    """Usable zones, keeping the first zone of each MIDI pitch."""
    seen = set()
    result = []
    for zone in zones:
        if not zone.is_usable or zone.midi in seen:
            continue
        seen.add(zone.midi)
        result.append(zone)
    return result


class SoundfontLoader:
    """
    Loads WebAudioFont instruments into the sample cache.

    Example:
        ```python
        loader = SoundfontLoader(config)
        loader.load("gm_piano", ["0000_JCLive_sf2_file", "0000_FluidR3_GM_sf2_file"])
        ```
    """

    def __init__(
        self,
        config: Optional[LoaderConfig] = None,
        session: Optional[requests.Session] = None,
        transcoder: Optional[Transcoder] = None,
    ):
        self.config = config or LoaderConfig.from_env()
        self.cache_dir = self.config.cache_path
        self.session = session or requests.Session()
        self.transcoder = transcoder or Transcoder(
            executable=self.config.transcoder,
            sample_rate=self.config.sample_rate,
            channels=self.config.channels,
        )

    def font_url(self, font_name: str) -> str:
        return f"{self.config.soundfont_url.rstrip('/')}/{font_name}.js"

    def fetch_zones(self, font_name: str) -> List[SoundfontZoneSchema]:
        """
        Download and parse one font variant.

        Failures are logged and give an empty list.
        """
        url = self.font_url(font_name)
        try:
            response = self.session.get(url, timeout=self.config.http_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Failed to download soundfont %s: %s", font_name, e)
            return []

        zones = parse_font_zones(response.text)
        if not zones:
            logger.error("No zones found in soundfont %s", font_name)
        return zones

    def _best(self, font_names: List[str]) -> Optional[Tuple[str, List[SoundfontZoneSchema]]]:
        best: Optional[Tuple[str, List[SoundfontZoneSchema]]] = None
        for font_name in font_names:
            zones = unique_zones(self.fetch_zones(font_name))
            if zones and (best is None or len(zones) > len(best[1])):
                best = (font_name, zones)
        return best

    def best_variant(self, font_names: List[str]) -> Optional[str]:
        """
        The font variant with the most distinct usable pitches.

        The first variant wins on a tie; None if no variant has any.
        """
        best = self._best(font_names)
        return best[0] if best else None

    def is_cached(self, instrument: str) -> bool:
        bank_dir = self.cache_dir / instrument
        if not bank_dir.is_dir():
            return False
        return any(
            entry.suffix.lower() == ".wav" and not entry.name.startswith("_")
            for entry in bank_dir.iterdir()
        )

    def cached_soundfonts(self, names: Iterable[str]) -> List[str]:
        return [name for name in names if self.is_cached(name)]

    def load(self, instrument: str, font_names: Any) -> bool:
        """
        Load a General MIDI instrument.

        Args:
            instrument: Bank name (e.g., "gm_piano")
            font_names: Font variant or list of variants to choose from

        Returns:
            True if the instrument is cached afterwards
        """
        if self.is_cached(instrument):
            logger.debug("Soundfont '%s' already cached", instrument)
            return True

        if not self.transcoder.is_available:
            logger.warning("%s not found: cannot convert soundfont '%s'",
                           self.transcoder.executable, instrument)
            return False

        if isinstance(font_names, str):
            font_names = [font_names]

        best = self._best(list(font_names))
        if best is None:
            logger.error("No usable font variant for '%s'", instrument)
            return False

        font_name, zones = best
        logger.info("Downloading soundfont %s (%s, %d pitches)", instrument, font_name, len(zones))

        bank_dir = self.cache_dir / instrument
        bank_dir.mkdir(parents=True, exist_ok=True)

        metadata = []
        for zone in zones:
            target = bank_dir / f"{len(metadata):03d}_note{zone.midi}.wav"
            try:
                self._write_zone(zone, target)
            except (TranscoderError, OSError, ValueError) as e:
                logger.warning("Skipping zone at MIDI %d of %s: %s", zone.midi, instrument, e)
                continue
            metadata.append({
                "index": len(metadata),
                "midi": zone.midi,
                "keyRangeLow": zone.key_range_low,
                "keyRangeHigh": zone.key_range_high,
            })

        if not metadata:
            logger.error("No samples could be converted for '%s'", instrument)
            return False

        with open(bank_dir / ZONES_FILE, "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2)

        logger.info("Soundfont '%s': saved %d samples", instrument, len(metadata))
        return True

    def load_all(self, instruments: Dict[str, List[str]]) -> int:
        """
        Load every instrument of a catalog.

        Returns:
            Number of instruments cached afterwards
        """
        loaded = 0
        with ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="Soundfont-",
        ) as executor:
            futures = {
                executor.submit(self.load, name, fonts): name
                for name, fonts in instruments.items() if fonts
            }
            for future in as_completed(futures):
                try:
                    if future.result():
                        loaded += 1
                except Exception as e:
                    logger.error("Soundfont '%s' failed: %s", futures[future], e)

        logger.info("Loaded %d/%d soundfonts", loaded, len(instruments))
        return loaded

    def _write_zone(self, zone: SoundfontZoneSchema, target: Path) -> None:
        try:
            audio = base64.b64decode(_DATA_URI_RE.sub("", zone.file or ""))
        except binascii.Error as e:
            raise ValueError(f"invalid base64 audio: {e}")

        token = uuid.uuid4().hex[:8]
        source = target.with_name(f"_tmp_{token}.mp3")
        part = target.with_name(f"{target.name}.{token}.part")
        try:
            with open(source, "wb") as f:
                f.write(audio)
            self.transcoder.convert(source, part)
            os.replace(part, target)
        finally:
            for leftover in (source, part):
                if leftover.exists():
                    leftover.unlink()
