"""Tests for the download/convert/cache pipeline."""
import json
import logging
import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from strudel_samples.bank_metadata import BankRegistry
from strudel_samples.config_loader import ConfigLoader
from strudel_samples.sample_manager import (
    LoadResult,
    ManifestError,
    NetworkError,
    SampleManager,
    github_manifest_url,
)

BASE = "https://cdn.test/Dirt-Samples/"


@pytest.fixture
def registry():
    return BankRegistry()


@pytest.fixture
def manager(loader_config, fake_session, fake_transcoder, registry):
    return SampleManager(
        loader_config,
        session=fake_session,
        transcoder=fake_transcoder,
        registry=registry,
        config_loader=ConfigLoader(),
    )


def bank_files(manager, bank):
    return sorted(os.listdir(manager.bank_dir(bank)))


class TestGithubShorthand:

    def test_user_repo(self):
        url, root = github_manifest_url("github:tidalcycles/dirt-samples")
        assert url == "https://raw.githubusercontent.com/tidalcycles/dirt-samples/main/strudel.json"
        assert root == "https://raw.githubusercontent.com/tidalcycles/dirt-samples/main/"

    def test_defaults(self):
        url, _ = github_manifest_url("github:someone")
        assert url == "https://raw.githubusercontent.com/someone/samples/main/strudel.json"

    def test_branch(self):
        url, _ = github_manifest_url("github:someone/kit/dev")
        assert url == "https://raw.githubusercontent.com/someone/kit/dev/strudel.json"

    def test_empty(self):
        with pytest.raises(ManifestError):
            github_manifest_url("github:")


class TestResolveSource:

    def test_inline_map(self, manager):
        banks, base = manager.resolve_source({"casio": "casio/high.wav"}, BASE)
        assert banks == {"casio": ["casio/high.wav"]}
        assert base == BASE

    def test_inline_base_wins(self, manager):
        _, base = manager.resolve_source({"_base": "https://other/", "a": ["a.wav"]}, BASE)
        assert base == "https://other/"

    def test_url_manifest_directory(self, manager, fake_session):
        fake_session.routes["https://cdn.test/packs/pack.json"] = {"a": ["a.wav"]}
        banks, base = manager.resolve_source("https://cdn.test/packs/pack.json")
        assert banks == {"a": ["a.wav"]}
        assert base == "https://cdn.test/packs/"

    def test_url_manifest_caller_base(self, manager, fake_session):
        fake_session.routes["https://cdn.test/packs/pack.json"] = {"a": ["a.wav"]}
        _, base = manager.resolve_source("https://cdn.test/packs/pack.json", BASE)
        assert base == BASE

    def test_github_base(self, manager, fake_session):
        url, root = github_manifest_url("github:u/r")
        fake_session.routes[url] = {"a": ["a.wav"]}
        _, base = manager.resolve_source("github:u/r")
        assert base == root

    def test_unrecognized(self, manager):
        with pytest.raises(ManifestError):
            manager.resolve_source("just-a-name")

    def test_invalid_manifest(self, manager):
        with pytest.raises(ManifestError):
            manager.resolve_source({"bank": 42})

    def test_fetch_failure(self, manager):
        with pytest.raises(NetworkError):
            manager.resolve_source("https://cdn.test/missing.json")


class TestLoadSamples:

    def test_downloads_native_files(self, manager, fake_session):
        fake_session.routes[BASE + "casio/high.wav"] = b"high"
        fake_session.routes[BASE + "casio/low.wav"] = b"low"

        result = manager.load_samples({"casio": ["casio/high.wav", "casio/low.wav"]}, BASE)

        assert isinstance(result, LoadResult)
        assert result.bank_names == ["casio"]
        assert result.bank_path == str(manager.cache_dir)
        assert bank_files(manager, "casio") == ["000_high.wav", "001_low.wav"]
        assert (manager.bank_dir("casio") / "001_low.wav").read_bytes() == b"low"

    def test_cached_bank_not_downloaded_again(self, manager, fake_session):
        fake_session.routes[BASE + "casio/high.wav"] = b"high"
        source = {"casio": ["casio/high.wav"]}

        manager.load_samples(source, BASE)
        calls = len(fake_session.calls)
        result = manager.load_samples(source, BASE)

        assert result.bank_names == ["casio"]
        assert len(fake_session.calls) == calls

    def test_failed_files_skipped_with_dense_indices(self, manager, fake_session):
        fake_session.routes[BASE + "k/b.wav"] = b"b"
        fake_session.routes[BASE + "k/c.wav"] = b"c"

        result = manager.load_samples({"k": ["k/a.wav", "k/b.wav", "k/c.wav"]}, BASE)

        assert result.bank_names == ["k"]
        assert bank_files(manager, "k") == ["000_b.wav", "001_c.wav"]

    def test_bank_without_samples_left_out(self, manager, fake_session):
        fake_session.routes[BASE + "ok/a.wav"] = b"a"

        result = manager.load_samples({"ok": ["ok/a.wav"], "bad": ["bad/a.wav"]}, BASE)

        assert result.bank_names == ["ok"]
        assert not manager.bank_dir("bad").exists()

    def test_network_exception_skipped(self, manager, fake_session):
        fake_session.routes[BASE + "k/a.wav"] = requests.ConnectionError("down")
        fake_session.routes[BASE + "k/b.wav"] = b"b"

        manager.load_samples({"k": ["k/a.wav", "k/b.wav"]}, BASE)
        assert bank_files(manager, "k") == ["000_b.wav"]

    def test_unsupported_format_skipped(self, manager, fake_session):
        fake_session.routes[BASE + "x/readme.txt"] = b"text"
        fake_session.routes[BASE + "x/a.aif"] = b"aif"

        manager.load_samples({"x": ["x/readme.txt", "x/a.aif"]}, BASE)

        assert bank_files(manager, "x") == ["000_a.aif"]
        assert BASE + "x/readme.txt" not in fake_session.calls

    def test_convertible_files_transcoded(self, manager, fake_session, fake_transcoder):
        fake_session.routes[BASE + "p/C 4.mp3"] = b"mp3data"

        result = manager.load_samples({"p": ["p/C 4.mp3"]}, BASE)

        assert result.bank_names == ["p"]
        assert bank_files(manager, "p") == ["000_C_4.wav"]
        assert (manager.bank_dir("p") / "000_C_4.wav").read_bytes() == b"RIFFmp3data"
        assert len(fake_transcoder.calls) == 1

    def test_transcoder_failure_skips_file(self, manager, fake_session, fake_transcoder):
        fake_transcoder.fail = True
        fake_session.routes[BASE + "p/a.ogg"] = b"ogg"

        result = manager.load_samples({"p": ["p/a.ogg"]}, BASE)

        assert result.bank_names == []
        assert not manager.bank_dir("p").exists()

    def test_absolute_urls_pass_through(self, manager, fake_session):
        fake_session.routes["https://elsewhere.test/a.wav"] = b"a"
        manager.load_samples({"k": ["https://elsewhere.test/a.wav"]}, BASE)
        assert bank_files(manager, "k") == ["000_a.wav"]

    def test_note_keyed_bank_ordered_by_pitch(self, manager, fake_session, registry):
        fake_session.routes[BASE + "piano/C4.mp3"] = b"c4"
        fake_session.routes[BASE + "piano/A0.mp3"] = b"a0"

        manager.load_samples({"piano": {"C4": "piano/C4.mp3", "A0": ["piano/A0.mp3"]}}, BASE)

        assert bank_files(manager, "piano") == ["000_A0.wav", "001_C4.wav"]
        assert registry.get("piano").sample_midi_notes == [21, 60]

    def test_failed_pitched_file_not_registered(self, manager, fake_session, registry, caplog):
        fake_session.routes[BASE + "piano/A0.mp3"] = b"a0"
        fake_session.routes[BASE + "piano/A2.mp3"] = b"a2"
        entry = {"A0": "piano/A0.mp3", "A1": "piano/A1.mp3", "A2": "piano/A2.mp3"}

        with caplog.at_level(logging.WARNING, logger="strudel_samples.sample_manager"):
            manager.load_samples({"piano": entry}, BASE)

        assert bank_files(manager, "piano") == ["000_A0.wav", "001_A2.wav"]
        assert registry.get("piano").sample_midi_notes == [21, 45]
        assert "missing 1 samples (A1)" in caplog.text

        registry.clear()
        manager.load_samples({"piano": entry}, BASE)
        assert registry.get("piano").sample_midi_notes == [21, 45]

    def test_registry_filled_for_cached_bank(self, manager, fake_session, registry):
        fake_session.routes[BASE + "k/a.wav"] = b"a"
        manager.load_samples({"k": ["k/a.wav"]}, BASE)
        registry.clear()

        manager.load_samples({"k": ["k/a.wav"]}, BASE)
        assert registry.get("k").sample_count == 1

    def test_manifest_url_source(self, manager, fake_session):
        fake_session.routes["https://cdn.test/packs/pack.json"] = {"drums": ["bd.wav"]}
        fake_session.routes["https://cdn.test/packs/bd.wav"] = b"bd"

        result = manager.load_samples("https://cdn.test/packs/pack.json")

        assert result.bank_names == ["drums"]

    def test_local_manifest(self, manager, temp_dir):
        pack = Path(temp_dir) / "pack"
        (pack / "hits").mkdir(parents=True)
        (pack / "hits" / "clap.wav").write_bytes(b"clap")
        (pack / "strudel.json").write_text(json.dumps({"hits": ["hits/clap.wav"]}))

        result = manager.load_samples(str(pack / "strudel.json"))

        assert result.bank_names == ["hits"]
        assert (manager.bank_dir("hits") / "000_clap.wav").read_bytes() == b"clap"

    def test_source_failures_give_empty_result(self, manager, fake_session):
        fake_session.routes["https://cdn.test/bad.json"] = "{not json"

        assert manager.load_samples("https://cdn.test/bad.json").bank_names == []
        assert manager.load_samples("https://cdn.test/missing.json").bank_names == []
        assert manager.load_samples({"bank": 42}).bank_names == []
        assert not manager.load_samples("nothing").loaded

    def test_no_temporary_files_left(self, manager, fake_session):
        fake_session.routes[BASE + "m/a.wav"] = b"a"
        fake_session.routes[BASE + "m/b.mp3"] = b"b"
        manager.load_samples({"m": ["m/a.wav", "m/b.mp3", "m/c.flac"]}, BASE)
        assert bank_files(manager, "m") == ["000_a.wav", "001_b.wav"]


class TestCache:

    def test_cached_banks(self, manager, fake_session):
        fake_session.routes[BASE + "k/a.wav"] = b"a"
        manager.load_samples({"k": ["k/a.wav"]}, BASE)

        partial = manager.bank_dir("partial")
        partial.mkdir(parents=True)
        (partial / "000_a.wav.1234.part").write_bytes(b"x")

        assert manager.is_bank_cached("k")
        assert not manager.is_bank_cached("partial")
        assert not manager.is_bank_cached("missing")
        assert manager.cached_banks() == ["k"]
        assert manager.cached_files("k") == ["000_a.wav"]

    def test_init_creates_cache(self, manager):
        manager.init()
        assert manager.cache_dir.is_dir()

    def test_init_warns_without_transcoder(self, manager, fake_transcoder, caplog):
        fake_transcoder.is_available = False
        with caplog.at_level(logging.WARNING, logger="strudel_samples.sample_manager"):
            manager.init()
        assert "not found" in caplog.text


class TestDefaultSamples:

    def test_loads_packs_and_notifies_once(self, loader_config, fake_session, fake_transcoder, temp_dir):
        config_dir = Path(temp_dir) / "configs"
        config_dir.mkdir()
        (config_dir / "known_banks.yaml").write_text(
            "banks: {}\n"
            "default_packs:\n"
            "  - name: one\n"
            "    source: {a: [a.wav]}\n"
            f"    base_url: {BASE}\n"
            "  - name: two\n"
            "    source: {b: [b.wav], c: [c.wav]}\n"
            f"    base_url: {BASE}\n"
            "  - name: broken\n"
            "    source: https://cdn.test/missing.json\n"
        )
        fake_session.routes[BASE + "a.wav"] = b"a"
        fake_session.routes[BASE + "b.wav"] = b"b"
        fake_session.routes[BASE + "c.wav"] = b"c"

        manager = SampleManager(
            loader_config,
            session=fake_session,
            transcoder=fake_transcoder,
            config_loader=ConfigLoader(config_dir),
        )
        notifier = MagicMock()

        assert manager.load_default_samples(notifier) == 3
        notifier.notify_reload.assert_called_once_with(str(manager.cache_dir))

    def test_nothing_loaded_no_notification(self, loader_config, fake_session, fake_transcoder, temp_dir):
        config_dir = Path(temp_dir) / "configs"
        config_dir.mkdir()
        (config_dir / "known_banks.yaml").write_text("default_packs: []\n")

        manager = SampleManager(
            loader_config,
            session=fake_session,
            transcoder=fake_transcoder,
            config_loader=ConfigLoader(config_dir),
        )
        notifier = MagicMock()

        assert manager.load_default_samples(notifier) == 0
        notifier.notify_reload.assert_not_called()
