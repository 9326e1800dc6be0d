"""
Drum machine catalog.

The tidal-drum-machines collection names its banks <Machine>_<voice>
(RolandTR909_bd, LinnDrum_sd, ...) while code uses short aliases
(tr909, linn). This module holds the alias table and sample map, fetched
once per process, and resolves names in both directions.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import requests
from pydantic import ValidationError

from .schemas import validate_aliases, validate_manifest
from .server.config import LoaderConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AliasEntry:
    """Inverted alias: short alias -> canonical machine name."""
    alias: str
    alias_lower: str
    canonical_name: str


@dataclass(frozen=True)
class DrumMachineMatch:
    """Result of matching a combined name such as 'tr909bd'."""
    full_bank_name: str
    is_valid: bool


class DrumMachineCatalog:
    """
    Alias table and sample map of the tidal drum machines.

    The tables are loaded at most once; a failed load leaves the
    catalog empty so a later call can try again.

    Example:
        ```python
        catalog = DrumMachineCatalog(config)
        catalog.ensure_loaded()
        catalog.resolve_alias("tr909")   # "RolandTR909"
        catalog.match_sound("tr909bd")   # DrumMachineMatch("RolandTR909_bd", True)
        ```
    """

    def __init__(
        self,
        config: Optional[LoaderConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or LoaderConfig.from_env()
        self.session = session or requests.Session()

        cdn = self.config.cdn_base.rstrip("/")
        self.alias_url = f"{cdn}/tidal-drum-machines-alias.json"
        self.sample_map_url = f"{cdn}/tidal-drum-machines.json"
        self.default_base_url = f"{cdn}/tidal-drum-machines/machines/"

        self._lock = threading.Lock()
        self._loaded = False
        self._aliases: Dict[str, str] = {}
        self._entries: List[AliasEntry] = []
        self._sample_map: Dict[str, Any] = {}
        self._base_url = self.default_base_url

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def sample_map(self) -> Dict[str, Any]:
        return self._sample_map

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def entries(self) -> List[AliasEntry]:
        """Alias entries, longest alias first."""
        return self._entries

    def ensure_loaded(self) -> bool:
        """
        Fetch the alias table and sample map unless already loaded.

        Returns:
            True if the tables are available
        """
        if self._loaded:
            return True

        with self._lock:
            if self._loaded:
                return True
            try:
                aliases = self._fetch(self.alias_url)
                sample_map = self._fetch(self.sample_map_url)
            except requests.RequestException as e:
                logger.error("Failed to fetch drum machine metadata: %s", e)
                return False
            except ValueError as e:
                logger.error("Invalid drum machine metadata: %s", e)
                return False

            try:
                self._install(aliases, sample_map)
            except ValidationError as e:
                logger.error("Invalid drum machine metadata: %s", e)
                return False

        logger.info(
            "Loaded drum machine metadata: %d aliases, %d banks",
            len(self._entries), len(self._sample_map),
        )
        return True

    def load_tables(self, aliases: Mapping[str, str], sample_map: Mapping[str, Any]) -> None:
        """
        Install the tables directly.

        Args:
            aliases: Full machine name -> short alias
            sample_map: Sample map in strudel.json form (may contain _base)

        Raises:
            pydantic.ValidationError: If either table is malformed
        """
        with self._lock:
            self._install(aliases, sample_map)

    def _fetch(self, url: str) -> Any:
        response = self.session.get(url, timeout=self.config.http_timeout)
        response.raise_for_status()
        return response.json()

    def _install(self, aliases: Any, sample_map: Any) -> None:
        alias_manifest = validate_aliases(aliases)
        manifest = validate_manifest(sample_map)

        lookup: Dict[str, str] = {}
        entries = []
        for alias, full_name in alias_manifest.inverted():
            alias_lower = alias.lower()
            lookup[alias_lower] = full_name
            lookup[alias] = full_name
            entries.append(AliasEntry(alias, alias_lower, full_name))
        entries.sort(key=lambda entry: len(entry.alias), reverse=True)

        self._aliases = lookup
        self._entries = entries
        self._sample_map = manifest.banks()
        self._base_url = manifest.base or self.default_base_url
        self._loaded = True

    def resolve_alias(self, alias: str) -> Optional[str]:
        """
        Full machine name for an alias ("tr909" -> "RolandTR909").

        Case-insensitive; None if unknown or not loaded.
        """
        if not self._loaded:
            return None
        return self._aliases.get(alias.lower()) or self._aliases.get(alias)

    def has_bank(self, full_bank_name: str) -> bool:
        return full_bank_name in self._sample_map

    def bank_info(self, full_bank_name: str) -> Optional[Tuple[Dict[str, Any], str]]:
        """
        Download source for one bank.

        Returns:
            ({bank: files}, base_url), or None if the bank is unknown
        """
        samples = self._sample_map.get(full_bank_name)
        if samples is None:
            return None
        return {full_bank_name: samples}, self._base_url

    def match_sound(self, name: str) -> Optional[DrumMachineMatch]:
        """
        Match a combined alias + voice name.

        Accepts "tr909bd", "tr909_bd", "TR909bd". The longest alias that
        prefixes the name wins; an alias covering the whole name is not
        a match.

        Returns:
            DrumMachineMatch, or None if no alias prefixes the name
        """
        name_lower = name.lower()
        for entry in self._entries:
            if not name_lower.startswith(entry.alias_lower):
                continue
            voice = name[len(entry.alias):]
            if voice.startswith("_"):
                voice = voice[1:]
            if not voice:
                continue
            full_bank_name = f"{entry.canonical_name}_{voice}"
            return DrumMachineMatch(full_bank_name, full_bank_name in self._sample_map)
        return None

    def apply_bank_prefix(self, value: Dict[str, Any]) -> Dict[str, Any]:
        """
        Rewrite s for a value that carries a bank.

        bank="tr909", s="bd"       -> s="RolandTR909_bd"
        bank="tr909", s="tr909_sd" -> s="RolandTR909_sd"
        bank="foo",   s="bd"       -> s="foo_bd"

        Returns:
            A copy without bank, or the value itself if it has no bank
        """
        bank = value.get("bank")
        sound = value.get("s")
        if not bank or not sound:
            return value

        alias = str(bank)
        sound = str(sound)
        full_name = self.resolve_alias(alias)

        mapped = dict(value)
        if sound.startswith(alias + "_"):
            if full_name:
                mapped["s"] = f"{full_name}_{sound[len(alias) + 1:]}"
        elif full_name and sound.startswith(full_name + "_"):
            pass
        elif full_name:
            mapped["s"] = f"{full_name}_{sound}"
        else:
            mapped["s"] = f"{alias}_{sound}"
        del mapped["bank"]
        return mapped
