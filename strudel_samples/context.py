"""
Process-wide sample loading context.

Builds the catalogs, caches and network clients once and hands them to
the on-demand loader and the CLI.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .bank_metadata import BankRegistry
from .config_loader import ConfigLoader, get_config_loader
from .drum_machines import DrumMachineCatalog
from .sample_manager import USER_AGENT, SampleManager
from .server.config import LoaderConfig
from .server.osc_client import ReloadNotifier
from .server.worker import InFlightLoads
from .soundfont_loader import SoundfontLoader
from .transcoder import Transcoder

logger = logging.getLogger(__name__)


@dataclass
class SampleContext:
    """Everything the loaders share for the life of the process."""
    config: LoaderConfig
    config_loader: ConfigLoader
    registry: BankRegistry
    drum_machines: DrumMachineCatalog
    samples: SampleManager
    soundfonts: SoundfontLoader
    loads: InFlightLoads
    notifier: ReloadNotifier

    @classmethod
    def create(
        cls,
        config: Optional[LoaderConfig] = None,
        session: Optional[requests.Session] = None,
        transcoder: Optional[Transcoder] = None,
        config_loader: Optional[ConfigLoader] = None,
    ) -> "SampleContext":
        """
        Wire up a context.

        Args:
            config: Loader configuration (defaults from the environment)
            session: Shared HTTP session
            transcoder: Shared transcoder
            config_loader: Catalog loader (defaults to the packaged YAML)
        """
        config = config or LoaderConfig.from_env()
        config_loader = config_loader or get_config_loader()

        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": USER_AGENT})
        if transcoder is None:
            transcoder = Transcoder(
                executable=config.transcoder,
                sample_rate=config.sample_rate,
                channels=config.channels,
            )

        registry = BankRegistry()
        return cls(
            config=config,
            config_loader=config_loader,
            registry=registry,
            drum_machines=DrumMachineCatalog(config, session=session),
            samples=SampleManager(
                config,
                session=session,
                transcoder=transcoder,
                registry=registry,
                config_loader=config_loader,
            ),
            soundfonts=SoundfontLoader(config, session=session, transcoder=transcoder),
            loads=InFlightLoads(max_workers=config.max_workers),
            notifier=ReloadNotifier(config),
        )

    @property
    def soundfont_names(self) -> Dict[str, List[str]]:
        """General MIDI instrument -> font variants."""
        return self.config_loader.load_soundfonts()

    @property
    def known_banks(self) -> Dict[str, Dict[str, Any]]:
        return self.config_loader.load_known_banks()

    def startup(self, connect: bool = True, load_drum_machines: bool = True) -> None:
        """
        Prepare the cache and optionally the network side.

        Args:
            connect: Configure the SuperDirt control channel
            load_drum_machines: Fetch the drum machine tables now
        """
        self.samples.init()
        if connect:
            self.notifier.connect()
        if load_drum_machines:
            self.drum_machines.ensure_loaded()

    def shutdown(self) -> None:
        self.loads.shutdown(wait=True)
        self.notifier.close()
        logger.debug("Sample context shut down")
