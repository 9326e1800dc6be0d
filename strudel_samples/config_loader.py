"""
Configuration loader for the static sound catalogs.

Provides centralized loading of the YAML catalogs shipped with the
package (General MIDI soundfonts, known sample banks, default packs)
with caching, so the classifier's membership checks stay O(1).
"""

from pathlib import Path
from typing import Dict, Any, Optional, List
import logging

import yaml

logger = logging.getLogger(__name__)


class ConfigLoadError(Exception):
    """Raised when configuration loading fails."""
    pass


class ConfigLoader:
    """
    Loads sound catalogs from YAML files with caching.

    Attributes:
        config_dir: Base directory for configuration files
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Base directory for config files.
                       Defaults to the configs directory inside this package.
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent / "configs"
        else:
            self.config_dir = Path(config_dir)

        self._cache: Dict[str, Any] = {}

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        """
        Load a YAML file and return its contents.

        Raises:
            ConfigLoadError: If the file cannot be loaded or parsed
        """
        if not path.exists():
            raise ConfigLoadError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Failed to parse YAML file {path}: {e}")
        except OSError as e:
            raise ConfigLoadError(f"Failed to load configuration file {path}: {e}")

    def _load_cached(self, cache_key: str, filename: str) -> Dict[str, Any]:
        if cache_key in self._cache:
            return self._cache[cache_key]

        config_path = self.config_dir / filename
        data = self._load_yaml(config_path)
        self._cache[cache_key] = data
        logger.debug("Loaded %s from %s", cache_key, config_path)
        return data

    def load_soundfonts(self) -> Dict[str, List[str]]:
        """
        Load the General MIDI soundfont catalog.

        Returns:
            Dictionary mapping instrument names (gm_piano, gm_violin, ...)
            to their WebAudioFont font variants.

        Raises:
            ConfigLoadError: If the catalog cannot be loaded
        """
        data = self._load_cached("soundfonts", "gm_soundfonts.yaml")
        instruments = data.get("instruments", {})
        if not isinstance(instruments, dict):
            raise ConfigLoadError("gm_soundfonts.yaml: 'instruments' must be a mapping")
        return instruments

    def load_known_banks(self) -> Dict[str, Dict[str, Any]]:
        """
        Load the table of known static sample banks.

        Returns:
            Dictionary mapping bank names to {'source': ..., 'base_url': ...}.
            A source is either a manifest URL or an inline sample map.

        Raises:
            ConfigLoadError: If the table cannot be loaded
        """
        data = self._load_cached("known_banks", "known_banks.yaml")
        banks = data.get("banks", {})
        if not isinstance(banks, dict):
            raise ConfigLoadError("known_banks.yaml: 'banks' must be a mapping")
        return banks

    def load_default_packs(self) -> List[Dict[str, Any]]:
        """
        Load the sample packs downloaded by `defaults`.

        Returns:
            List of {'name', 'source', 'base_url'} dictionaries
        """
        data = self._load_cached("known_banks", "known_banks.yaml")
        return list(data.get("default_packs", []))

    def reload(self) -> None:
        """Clear all caches so files are read again on next access."""
        self._cache.clear()
        logger.info("Configuration cache cleared")

    def is_available(self) -> bool:
        """Check if the configuration directory exists."""
        return self.config_dir.exists()


# Module-level singleton for convenience
_default_loader: Optional[ConfigLoader] = None


def get_config_loader(config_dir: Optional[Path] = None) -> ConfigLoader:
    """
    Get the default ConfigLoader instance.

    Creates a singleton instance on first call. Subsequent calls
    return the same instance unless a different config_dir is specified.
    """
    global _default_loader

    if config_dir is not None:
        return ConfigLoader(config_dir)

    if _default_loader is None:
        _default_loader = ConfigLoader()

    return _default_loader
