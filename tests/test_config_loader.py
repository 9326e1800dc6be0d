"""Tests for ConfigLoader module."""
import pytest
from pathlib import Path


class TestConfigLoader:
    """Test suite for ConfigLoader class."""

    def test_loader_initialization(self, project_config_dir):
        """Test ConfigLoader initializes with config directory."""
        from strudel_samples.config_loader import ConfigLoader

        loader = ConfigLoader(str(project_config_dir))
        assert loader.config_dir == Path(project_config_dir)
        assert loader.is_available()

    def test_default_loader_uses_package_configs(self, project_config_dir):
        """Test ConfigLoader defaults to the packaged catalogs."""
        from strudel_samples.config_loader import ConfigLoader

        loader = ConfigLoader()
        assert loader.config_dir.name == "configs"
        assert (loader.config_dir / "gm_soundfonts.yaml").exists()

    def test_load_soundfonts(self):
        """Test the General MIDI catalog."""
        from strudel_samples.config_loader import ConfigLoader

        soundfonts = ConfigLoader().load_soundfonts()

        assert len(soundfonts) == 125
        assert all(name.startswith("gm_") for name in soundfonts)
        assert "0000_FluidR3_GM_sf2_file" in soundfonts["gm_piano"]
        assert soundfonts["gm_violin"][0].startswith("0400_")

    def test_load_known_banks(self):
        """Test the static bank table."""
        from strudel_samples.config_loader import ConfigLoader

        banks = ConfigLoader().load_known_banks()

        for name in ("piano", "mridangam", "casio", "jazz", "metal", "east", "crow"):
            assert name in banks
            assert "source" in banks[name]
            assert banks[name]["base_url"].endswith("/")
        assert banks["piano"]["source"].endswith("piano.json")
        assert banks["casio"]["source"] == {
            "casio": ["casio/high.wav", "casio/low.wav", "casio/noise.wav"]
        }

    def test_load_default_packs(self):
        """Test the default pack list."""
        from strudel_samples.config_loader import ConfigLoader

        packs = ConfigLoader().load_default_packs()
        names = [pack["name"] for pack in packs]

        assert "drum-machines" in names
        assert {"name": "dirt-samples", "source": "github:tidalcycles/dirt-samples"} in packs

    def test_caching(self, project_config_dir):
        """Test that catalogs are cached."""
        from strudel_samples.config_loader import ConfigLoader

        loader = ConfigLoader(project_config_dir)
        assert loader.load_soundfonts() is loader.load_soundfonts()

    def test_load_logged_with_arguments(self, project_config_dir, caplog):
        """Test catalog loads are logged with lazy arguments."""
        import logging
        from strudel_samples.config_loader import ConfigLoader

        with caplog.at_level(logging.DEBUG, logger="strudel_samples.config_loader"):
            ConfigLoader(project_config_dir).load_soundfonts()

        record = next(r for r in caplog.records if r.getMessage().startswith("Loaded soundfonts"))
        assert record.msg == "Loaded %s from %s"
        assert record.args[0] == "soundfonts"

    def test_reload_clears_cache(self, project_config_dir):
        """Test reload() clears the cache."""
        from strudel_samples.config_loader import ConfigLoader

        loader = ConfigLoader(project_config_dir)
        first = loader.load_known_banks()
        loader.reload()
        assert loader.load_known_banks() is not first

    def test_missing_file_raises_error(self, temp_dir):
        """Test a missing catalog raises ConfigLoadError."""
        from strudel_samples.config_loader import ConfigLoader, ConfigLoadError

        loader = ConfigLoader(temp_dir)
        with pytest.raises(ConfigLoadError):
            loader.load_soundfonts()

    def test_malformed_yaml_raises_error(self, temp_yaml_dir):
        """Test unparsable YAML raises ConfigLoadError."""
        from strudel_samples.config_loader import ConfigLoader, ConfigLoadError

        (temp_yaml_dir / "known_banks.yaml").write_text("banks: [unclosed\n")
        with pytest.raises(ConfigLoadError):
            ConfigLoader(temp_yaml_dir).load_known_banks()

    def test_wrong_shape_raises_error(self, temp_yaml_dir):
        """Test a catalog with the wrong structure raises ConfigLoadError."""
        from strudel_samples.config_loader import ConfigLoader, ConfigLoadError

        (temp_yaml_dir / "gm_soundfonts.yaml").write_text("instruments: [gm_piano]\n")
        with pytest.raises(ConfigLoadError):
            ConfigLoader(temp_yaml_dir).load_soundfonts()

    def test_get_config_loader_singleton(self, temp_dir):
        """Test get_config_loader returns a shared loader."""
        from strudel_samples.config_loader import get_config_loader

        assert get_config_loader() is get_config_loader()
        assert get_config_loader(Path(temp_dir)) is not get_config_loader()


@pytest.fixture
def temp_yaml_dir(temp_dir):
    return Path(temp_dir)
