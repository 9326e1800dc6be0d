"""
Sample Manager - Download, convert and cache sample banks

Resolves a sample source (strudel.json URL, github: shorthand, local
manifest or an inline map) into files in the local cache, laid out the
way SuperDirt expects:

    <cache_dir>/<bank>/000_<name>.wav
    <cache_dir>/<bank>/001_<name>.wav

Native formats are stored as-is; MP3/OGG/etc. are transcoded to WAV.
Every file is written under a temporary name and renamed into place, so
a file with a native extension in the cache is always complete.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import requests
from pydantic import ValidationError

from .bank_metadata import BankRegistry, pitched_keys
from .config_loader import ConfigLoader, get_config_loader
from .schemas import SampleManifest, validate_manifest
from .server.config import (
    CONVERTIBLE_FORMATS,
    GITHUB_RAW_URL,
    NATIVE_FORMATS,
    LoaderConfig,
)
from .transcoder import Transcoder, TranscoderError
from .utils import indexed_filename, sanitize_stem

logger = logging.getLogger(__name__)


Source = Union[str, Mapping[str, Any]]

DOWNLOAD_CHUNK_SIZE = 65536
USER_AGENT = "strudel-samples"

_INDEX_PREFIX_RE = re.compile(r"^\d+_")


class SampleLoadError(Exception):
    """Base class for errors raised while loading samples."""
    pass


class NetworkError(SampleLoadError):
    """A manifest or sample could not be fetched."""
    pass


class ManifestError(SampleLoadError):
    """A manifest could not be parsed or failed validation."""
    pass


class UnsupportedFormatError(SampleLoadError):
    """A sample has an extension that is neither native nor convertible."""
    pass


@dataclass
class LoadResult:
    """
    Outcome of loading one sample source.

    Attributes:
        bank_path: Cache root the banks were written to
        bank_names: Banks that hold at least one sample
    """
    bank_path: str
    bank_names: List[str] = field(default_factory=list)

    @property
    def loaded(self) -> bool:
        return bool(self.bank_names)


def github_manifest_url(shorthand: str) -> Tuple[str, str]:
    """
    Expand github:user/repo/branch into a raw manifest URL.

    The repo defaults to "samples" and the branch to "main".

    Returns:
        (manifest_url, branch_root_url)
    """
    path = shorthand[len("github:"):].strip("/")
    parts = [part for part in path.split("/") if part]
    if not parts:
        raise ManifestError(f"Invalid github source: {shorthand}")

    user = parts[0]
    repo = parts[1] if len(parts) > 1 else "samples"
    branch = parts[2] if len(parts) > 2 else "main"

    root = f"{GITHUB_RAW_URL}/{user}/{repo}/{branch}/"
    return root + "strudel.json", root


def is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def _manifest_dir(location: str) -> str:
    head, _, tail = location.rpartition("/")
    if head and tail.lower().endswith(".json"):
        return head + "/"
    return location if location.endswith("/") else location + "/"


def _describe(source: Source) -> str:
    return source if isinstance(source, str) else "<inline sample map>"


def _first_file(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = next((item for item in value if isinstance(item, str)), None)
    return value if isinstance(value, str) else None


def _stored_stem(filename: str) -> str:
    """Stem a sample file gets in the cache, without its index prefix."""
    return sanitize_stem(Path(filename.split("?", 1)[0]).stem)


class SampleManager:
    """
    Loads sample banks into the local cache.

    Banks that are already cached are never downloaded again. Failures
    are contained: a bad file is skipped, a bank with no usable files is
    left out of the result and a bad source yields an empty result.

    Example:
        ```python
        manager = SampleManager(LoaderConfig.from_env())
        manager.init()
        result = manager.load_samples("github:tidalcycles/dirt-samples")
        print(result.bank_names)
        ```
    """

    def __init__(
        self,
        config: Optional[LoaderConfig] = None,
        session: Optional[requests.Session] = None,
        transcoder: Optional[Transcoder] = None,
        registry: Optional[BankRegistry] = None,
        config_loader: Optional[ConfigLoader] = None,
    ):
        """
        Initialize the sample manager.

        Args:
            config: Loader configuration (defaults from the environment)
            session: HTTP session used for every request
            transcoder: Converter for non-native formats
            registry: Pitch registry filled as banks are loaded
            config_loader: Source of the default pack list
        """
        self.config = config or LoaderConfig.from_env()
        self.cache_dir = self.config.cache_path

        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": USER_AGENT})
        self.session = session

        self.transcoder = transcoder or Transcoder(
            executable=self.config.transcoder,
            sample_rate=self.config.sample_rate,
            channels=self.config.channels,
        )
        self.registry = registry
        self.config_loader = config_loader or get_config_loader()

        self._bank_locks: Dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def init(self) -> None:
        """Create the cache root and probe the transcoder."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        if self.transcoder.is_available:
            logger.info("Transcoder: %s", self.transcoder.version)
        else:
            logger.warning(
                "%s not found: %s samples will be skipped",
                self.transcoder.executable, "/".join(CONVERTIBLE_FORMATS),
            )
        logger.info("Sample cache: %s", self.cache_dir)

    # ------------------------------------------------------------------
    # Cache inspection
    # ------------------------------------------------------------------

    def bank_dir(self, bank_name: str) -> Path:
        return self.cache_dir / bank_name

    def cached_files(self, bank_name: str) -> List[str]:
        """Complete sample files of a bank, in index order."""
        bank_dir = self.bank_dir(bank_name)
        if not bank_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in bank_dir.iterdir()
            if entry.is_file()
            and not entry.name.startswith("_")
            and entry.suffix.lower() in NATIVE_FORMATS
        )

    def is_bank_cached(self, bank_name: str) -> bool:
        return bool(self.cached_files(bank_name))

    def cached_banks(self) -> List[str]:
        if not self.cache_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in self.cache_dir.iterdir()
            if entry.is_dir() and self.is_bank_cached(entry.name)
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def fetch_json(self, location: str) -> Any:
        """
        Fetch and decode a JSON document from a URL or a local path.

        Raises:
            NetworkError: If the document cannot be fetched
            ManifestError: If it is not valid JSON
        """
        if not is_remote(location):
            try:
                with open(location, "r", encoding="utf-8") as f:
                    return json.load(f)
            except OSError as e:
                raise NetworkError(f"Cannot read {location}: {e}")
            except ValueError as e:
                raise ManifestError(f"Invalid JSON in {location}: {e}")

        try:
            response = self.session.get(location, timeout=self.config.http_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch {location}: {e}")

        try:
            return response.json()
        except ValueError as e:
            raise ManifestError(f"Invalid JSON from {location}: {e}")

    def download(self, location: str, dest: Path) -> None:
        """
        Stream a file to dest.

        Raises:
            NetworkError: If the file cannot be fetched or written
        """
        if not is_remote(location):
            try:
                shutil.copyfile(location, dest)
            except OSError as e:
                raise NetworkError(f"Cannot copy {location}: {e}")
            return

        try:
            with self.session.get(
                location, stream=True, timeout=self.config.http_timeout
            ) as response:
                response.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise NetworkError(f"Failed to download {location}: {e}")
        except OSError as e:
            raise NetworkError(f"Failed to write {dest}: {e}")

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _validate(self, data: Any, location: str) -> SampleManifest:
        try:
            return validate_manifest(data)
        except ValidationError as e:
            raise ManifestError(f"Invalid sample manifest {location}: {e}")

    def resolve_source(
        self,
        source: Source,
        base_url: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], str]:
        """
        Turn a source into its bank map and base URL.

        Args:
            source: Inline map, github:user/repo/branch, manifest URL or path
            base_url: Base for relative filenames when the manifest has no _base

        Returns:
            (banks, base_url) with metadata keys removed from banks

        Raises:
            NetworkError: If the manifest cannot be fetched
            ManifestError: If the source is not understood or invalid
        """
        if isinstance(source, Mapping):
            manifest = self._validate(dict(source), "<inline>")
            return manifest.banks(), manifest.base or base_url or ""

        if not isinstance(source, str):
            raise ManifestError(f"Unsupported sample source type: {type(source).__name__}")

        if source.startswith("github:"):
            manifest_url, branch_root = github_manifest_url(source)
            manifest = self._validate(self.fetch_json(manifest_url), manifest_url)
            return manifest.banks(), manifest.base or branch_root

        if ".json" in source or source.startswith("http"):
            manifest = self._validate(self.fetch_json(source), source)
            return manifest.banks(), manifest.base or base_url or _manifest_dir(source)

        raise ManifestError(f"Unrecognized sample source: {source}")

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_samples(
        self,
        source: Source,
        base_url: Optional[str] = None,
    ) -> LoadResult:
        """
        Load every bank of a source into the cache.

        Never raises for source problems; they are logged and give an
        empty result.

        Args:
            source: Inline map, github: shorthand, manifest URL or path
            base_url: Base for relative filenames

        Returns:
            LoadResult listing banks with at least one sample on disk
        """
        result = LoadResult(bank_path=str(self.cache_dir))

        try:
            banks, base = self.resolve_source(source, base_url)
        except SampleLoadError as e:
            logger.error("Failed to load samples from %s: %s", _describe(source), e)
            return result

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        for bank_name, entry in banks.items():
            if self.load_bank(bank_name, entry, base):
                result.bank_names.append(bank_name)

        logger.info(
            "Loaded %d/%d banks from %s", len(result.bank_names), len(banks), _describe(source)
        )
        return result

    def load_bank(self, bank_name: str, entry: Any, base_url: str = "") -> bool:
        """
        Download one bank unless it is already cached.

        Args:
            bank_name: Bank (folder) name
            entry: List of filenames or note-keyed mapping
            base_url: Base for relative filenames

        Returns:
            True if the bank holds at least one sample afterwards
        """
        with self._bank_lock(bank_name):
            if self.is_bank_cached(bank_name):
                logger.debug("Bank '%s' already cached", bank_name)
                self._register(bank_name, entry)
                return True

            files = self._ordered_files(entry)
            if not files:
                logger.warning("Bank '%s' lists no sample files", bank_name)
                return False

            bank_dir = self.bank_dir(bank_name)
            bank_dir.mkdir(parents=True, exist_ok=True)

            index = 0
            for filename in files:
                location = self._resolve_location(filename, base_url)
                try:
                    self._fetch_sample(location, bank_dir, index, filename)
                except (SampleLoadError, TranscoderError) as e:
                    logger.warning("Skipping %s in bank '%s': %s", filename, bank_name, e)
                    continue
                index += 1

            if index == 0:
                logger.warning("No samples could be loaded for bank '%s'", bank_name)
                self._remove_empty_dir(bank_dir)
                return False

            logger.info("Loaded %d/%d samples into bank '%s'", index, len(files), bank_name)
            self._register(bank_name, entry)
            return True

    def load_default_samples(self, notifier: Any = None) -> int:
        """
        Load the default sample packs concurrently.

        Individual pack failures are logged and do not stop the others.
        One reload notification is sent if anything was loaded.

        Args:
            notifier: Optional ReloadNotifier to tell SuperDirt

        Returns:
            Number of banks available from the default packs
        """
        packs = self.config_loader.load_default_packs()
        loaded = 0

        with ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="SampleLoad-",
        ) as executor:
            futures = {
                executor.submit(self.load_samples, pack["source"], pack.get("base_url")): pack["name"]
                for pack in packs
            }
            for future in as_completed(futures):
                name = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error("Default pack '%s' failed: %s", name, e)
                    continue
                logger.info("Default pack '%s': %d banks", name, len(result.bank_names))
                loaded += len(result.bank_names)

        if loaded and notifier is not None:
            notifier.notify_reload(str(self.cache_dir))
        return loaded

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bank_lock(self, bank_name: str) -> threading.Lock:
        with self._locks_lock:
            lock = self._bank_locks.get(bank_name)
            if lock is None:
                lock = self._bank_locks[bank_name] = threading.Lock()
            return lock

    def _register(self, bank_name: str, entry: Any) -> None:
        if self.registry is None or not isinstance(entry, (list, Mapping)):
            return
        if isinstance(entry, Mapping) and pitched_keys(entry) is not None:
            entry = self._produced_entry(bank_name, entry)
        self.registry.register(bank_name, entry)

    def _produced_entry(self, bank_name: str, entry: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Note-keyed entry narrowed to the keys whose file is in the cache.

        Indices on disk are dense over the files that were produced, so
        registering a missing note would shift every pitch above it.
        """
        stems = {
            _INDEX_PREFIX_RE.sub("", Path(name).stem)
            for name in self.cached_files(bank_name)
        }
        produced: Dict[str, Any] = {}
        missing = []
        for key, value in entry.items():
            if key.startswith("_"):
                continue
            filename = _first_file(value)
            if filename is not None and _stored_stem(filename) in stems:
                produced[key] = value
            else:
                missing.append(key)

        if missing:
            logger.warning(
                "Pitched bank '%s' is missing %d samples (%s); registering the other %d",
                bank_name, len(missing), ", ".join(missing), len(produced),
            )
        return produced

    @staticmethod
    def _ordered_files(entry: Any) -> List[str]:
        """
        Filenames of a bank entry in download order.

        Note-keyed maps are ordered by pitch, so that sample index n
        matches the registry's sample_midi_notes; keys that are not note
        names follow in manifest order.
        """
        if isinstance(entry, str):
            return [entry]
        if isinstance(entry, list):
            return [item for item in entry if isinstance(item, str)]
        if not isinstance(entry, Mapping):
            return []

        pitched = pitched_keys(entry)
        if pitched is None:
            keys = [k for k in entry if not k.startswith("_")]
        else:
            ordered = [key for _, key in pitched]
            seen = set(ordered)
            keys = ordered + [k for k in entry if not k.startswith("_") and k not in seen]

        files = [_first_file(entry[key]) for key in keys]
        return [filename for filename in files if filename is not None]

    @staticmethod
    def _resolve_location(filename: str, base_url: str) -> str:
        if is_remote(filename) or os.path.isabs(filename):
            return filename
        return base_url + filename

    def _fetch_sample(self, location: str, bank_dir: Path, index: int, filename: str) -> Path:
        name = Path(filename.split("?", 1)[0])
        ext = name.suffix.lower()

        if ext in NATIVE_FORMATS:
            target = bank_dir / indexed_filename(index, name.stem, ext)
            self._download_atomic(location, target)
        elif ext in CONVERTIBLE_FORMATS:
            target = bank_dir / indexed_filename(index, name.stem, ".wav")
            self._download_and_convert(location, target, ext)
        else:
            raise UnsupportedFormatError(f"unsupported format '{ext or name.name}'")
        return target

    def _download_atomic(self, location: str, target: Path) -> None:
        part = target.with_name(f"{target.name}.{uuid.uuid4().hex[:8]}.part")
        try:
            self.download(location, part)
            os.replace(part, target)
        finally:
            if part.exists():
                part.unlink()

    def _download_and_convert(self, location: str, target: Path, ext: str) -> None:
        token = uuid.uuid4().hex[:8]
        source = target.with_name(f"_tmp_{token}{ext}")
        part = target.with_name(f"{target.name}.{token}.part")
        try:
            self.download(location, source)
            self.transcoder.convert(source, part)
            os.replace(part, target)
        finally:
            for leftover in (source, part):
                if leftover.exists():
                    leftover.unlink()

    @staticmethod
    def _remove_empty_dir(path: Path) -> None:
        try:
            path.rmdir()
        except OSError as e:
            logger.debug("Could not remove %s: %s", path, e)
