"""
On-Demand Loader - fetch the sounds a pattern needs before it plays

Scans pattern code for sound names and bank() calls, loads whatever is
missing from the cache and tells SuperDirt to pick up the new folders.
Startup stays fast because nothing is downloaded until code asks for it.
"""

import logging
from concurrent.futures import Future
from typing import List

from .classifier import Classification, SoundKind, classify
from .code_scanner import extract_bank_usage, extract_sound_names
from .context import SampleContext

logger = logging.getLogger(__name__)


class OnDemandLoader:
    """
    Loads sounds referenced by pattern code.

    Example:
        ```python
        context = SampleContext.create()
        context.startup()
        loader = OnDemandLoader(context)
        loader.load_sounds_for_code('s("bd sd").bank("tr909")')
        ```
    """

    def __init__(self, context: SampleContext):
        self.context = context

    def classify(self, name: str) -> Classification:
        """Classify name against the context's catalogs."""
        drum_machines = self.context.drum_machines
        if not drum_machines.is_loaded:
            drum_machines.ensure_loaded()
        return classify(
            name,
            self.context.soundfont_names,
            self.context.known_banks,
            drum_machines,
        )

    def is_sound_cached(self, name: str) -> bool:
        if name in self.context.soundfont_names:
            return self.context.soundfonts.is_cached(name)
        return self.context.samples.is_bank_cached(name)

    def register_cached_soundfont(self, name: str) -> None:
        """Register pitch metadata of a soundfont already in the cache."""
        files = self.context.samples.cached_files(name)
        if files:
            self.context.registry.register_soundfont_files(name, files)

    def load_sound(self, name: str) -> Future:
        """
        Load one sound unless it is cached.

        Concurrent calls for the same name share one load.

        Returns:
            Future resolving to True if the sound is available (or is not
            something this loader can download), False if loading failed
        """
        return self.context.loads.load_once(name, lambda: self._load(name))

    def _load(self, name: str) -> bool:
        try:
            return self._load_classified(self.classify(name))
        except Exception as e:
            logger.error("Failed to load %s: %s", name, e, exc_info=True)
            return False

    def _load_classified(self, sound: Classification) -> bool:
        if sound.kind is SoundKind.SOUNDFONT:
            fonts = self.context.soundfont_names.get(sound.name) or []
            if not fonts:
                return False
            if not self.context.soundfonts.load(sound.name, fonts):
                return False
            self.register_cached_soundfont(sound.name)
            return True

        if sound.kind is SoundKind.KNOWN_STATIC_BANK:
            info = self.context.known_banks[sound.name]
            result = self.context.samples.load_samples(info["source"], info.get("base_url"))
            return result.loaded

        if sound.kind is SoundKind.DRUM_MACHINE:
            if not sound.is_valid:
                logger.info("%s is not in the drum machine sample map", sound.full_bank_name)
                return True
            return self._load_drum_machine_bank(sound.full_bank_name)

        logger.debug("%s is not a downloadable sound (synth or preloaded)", sound.name)
        return True

    def _load_drum_machine_bank(self, full_bank_name: str) -> bool:
        if self.context.samples.is_bank_cached(full_bank_name):
            return True

        info = self.context.drum_machines.bank_info(full_bank_name)
        if info is None:
            logger.info("Unknown drum machine bank: %s", full_bank_name)
            return False

        source, base_url = info
        return self.context.samples.load_samples(source, base_url).loaded

    def load_sounds_for_code(self, code: str) -> List[str]:
        """
        Load every missing sound a piece of code refers to.

        Args:
            code: Pattern source

        Returns:
            Names (or drum machine banks) that were loaded by this call
        """
        sound_names = extract_sound_names(code)
        bank_usage = extract_bank_usage(code, window=self.context.config.bank_window)

        logger.info("Detected sounds: %s", ", ".join(sorted(sound_names)) or "(none)")
        if bank_usage:
            logger.info(
                "Detected banks: %s",
                ", ".join(f"{usage.bank}({','.join(usage.sounds)})" for usage in bank_usage),
            )

        soundfonts = self.context.soundfont_names
        known_banks = self.context.known_banks

        for name in sound_names:
            if name in soundfonts and self.context.soundfonts.is_cached(name):
                self.register_cached_soundfont(name)

        missing = sorted(
            name for name in sound_names
            if (name in soundfonts or name in known_banks) and not self.is_sound_cached(name)
        )
        futures = [(name, self.load_sound(name)) for name in missing]

        loaded = [name for name, future in futures if future.result()]

        if bank_usage and self.context.drum_machines.ensure_loaded():
            for usage in bank_usage:
                prefix = self.context.drum_machines.resolve_alias(usage.bank)
                if not prefix:
                    logger.info("Unknown bank alias: %s", usage.bank)
                    continue
                for sound in usage.sounds:
                    full_bank_name = f"{prefix}_{sound}"
                    if self.context.samples.is_bank_cached(full_bank_name):
                        continue
                    if self._load_drum_machine_bank(full_bank_name):
                        loaded.append(full_bank_name)

        if loaded:
            logger.info("Loaded %d sounds: %s", len(loaded), ", ".join(loaded))
            self.context.notifier.notify_reload(str(self.context.config.cache_path))
        else:
            logger.info("All sounds already cached or not loadable")
        return loaded
