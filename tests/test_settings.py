import pytest

from proofroom.errors import MalformedInput
from proofroom.settings import Settings, flatten_config, load_config_file


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.max_asset_count == 120
        assert s.max_asset_bytes == 15 * 1024 * 1024
        assert (s.max_total_seconds, s.page_timeout, s.asset_timeout) == (8.0, 6.0, 3.5)

    def test_unknown_keys_ignored(self, caplog):
        s = Settings.from_mapping({"max-asset-count": 7, "colour": "blue"})
        assert s.max_asset_count == 7
        assert "colour" in caplog.text

    def test_clamped(self):
        s = Settings.from_mapping({"max_asset_count": 0, "max_asset_bytes": 10, "asset_timeout": -1})
        assert s.max_asset_count == 1
        assert s.max_asset_bytes == 1024
        assert s.asset_timeout > 0

    def test_storage_dirs(self, tmp_path):
        s = Settings(data_dir=str(tmp_path))
        assert s.content_dir == tmp_path / "assets"
        assert s.projects_dir == tmp_path / "projects"


class TestConfigFiles:
    def test_toml_groups_flattened(self, tmp_path):
        p = tmp_path / "proofroom.toml"
        p.write_text('user_agent = "Bot/2"\n[budgets]\nmax_asset_count = 5\n[storage]\ndata_dir = "x"\n')
        assert load_config_file(str(p)) == {"user_agent": "Bot/2", "max_asset_count": 5, "data_dir": "x"}

    def test_yaml(self, tmp_path):
        p = tmp_path / "proofroom.yaml"
        p.write_text("budgets:\n  max_total_seconds: 2.5\nupload:\n  upload_workers: 1\n")
        s = Settings.from_mapping(load_config_file(str(p)))
        assert s.max_total_seconds == 2.5
        assert s.upload_workers == 1

    def test_unsupported_suffix(self, tmp_path):
        p = tmp_path / "proofroom.ini"
        p.write_text("[budgets]\n")
        with pytest.raises(MalformedInput):
            load_config_file(str(p))

    def test_top_level_must_be_mapping(self, tmp_path):
        p = tmp_path / "proofroom.yml"
        p.write_text("- a\n- b\n")
        with pytest.raises(MalformedInput):
            load_config_file(str(p))

    def test_flatten_ignores_unknown_groups(self):
        assert flatten_config({"other": {"a": 1}, "b": 2}) == {"b": 2}
