"""
Settings resolution: packaged defaults, override file, environment.
"""

import pytest
import yaml

from inventory_config import InventorySettings, compute_checksum, get_active_settings
from inventory_config.loader import (
    DEFAULTS_PATH,
    apply_env_overrides,
    load_settings,
    load_yaml_file,
    merge,
    parse_settings,
)


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_packaged_defaults(self):
        settings = load_settings()
        assert settings.database.url == "sqlite:///inventory.db"
        assert settings.ledger.day_timezone == "UTC"
        assert settings.ledger.serialize_withdrawals is False
        assert settings.reports.max_range_days == 366
        assert settings.reports.row_policy == "active_or_nonzero"
        assert settings.logging.level == "INFO"
        assert settings.checksum

    def test_defaults_match_dataclass_defaults(self):
        packaged = parse_settings(load_yaml_file(DEFAULTS_PATH))
        bare = InventorySettings()
        assert packaged.database == bare.database
        assert packaged.ledger == bare.ledger
        assert packaged.reports == bare.reports


class TestPrecedence:
    """defaults < override file < environment"""

    def test_override_file(self, tmp_path):
        path = write_yaml(
            tmp_path / "site.yaml",
            {"ledger": {"day_timezone": "America/New_York"}, "reports": {"row_policy": "all"}},
        )
        settings = load_settings(path)
        assert settings.ledger.day_timezone == "America/New_York"
        assert settings.reports.row_policy == "all"
        # Untouched keys keep their defaults
        assert settings.reports.max_range_days == 366

    def test_environment_wins(self, tmp_path):
        path = write_yaml(tmp_path / "site.yaml", {"ledger": {"day_timezone": "Europe/London"}})
        settings = load_settings(
            path,
            {"INVENTORY_DAY_TIMEZONE": "Asia/Tokyo", "DATABASE_URL": "sqlite://"},
        )
        assert settings.ledger.day_timezone == "Asia/Tokyo"
        assert settings.database.url == "sqlite://"

    def test_empty_env_values_ignored(self):
        data = apply_env_overrides({"logging": {"level": "INFO"}}, {"INVENTORY_LOG_LEVEL": ""})
        assert data["logging"]["level"] == "INFO"

    def test_merge_is_section_wise(self):
        merged = merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}, "b": {"z": 4}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": {"z": 4}}

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")


class TestValidation:
    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ({"metrics": {}}, "Unknown configuration sections"),
            ({"ledger": {"day_timezon": "UTC"}}, "Unknown keys in 'ledger'"),
            ({"ledger": {"day_timezone": "Mars/Olympus_Mons"}}, "Unknown day_timezone"),
            ({"reports": {"max_range_days": 0}}, "max_range_days"),
            ({"reports": {"row_policy": "everything"}}, "row_policy"),
        ],
    )
    def test_rejects(self, data, message):
        with pytest.raises(ValueError, match=message):
            parse_settings(data)

    def test_bad_import_actor(self):
        with pytest.raises(ValueError):
            parse_settings({"ledger": {"import_actor_id": "not-a-uuid"}})


class TestChecksum:
    def test_key_order_does_not_matter(self):
        a = {"ledger": {"day_timezone": "UTC", "serialize_withdrawals": False}}
        b = {"ledger": {"serialize_withdrawals": False, "day_timezone": "UTC"}}
        assert compute_checksum(a) == compute_checksum(b)

    def test_values_change_checksum(self):
        assert compute_checksum({"logging": {"level": "INFO"}}) != compute_checksum(
            {"logging": {"level": "DEBUG"}}
        )

    def test_settings_carry_checksum_of_merged_data(self, tmp_path):
        path = write_yaml(tmp_path / "site.yaml", {"logging": {"level": "DEBUG"}})
        assert load_settings(path).checksum != load_settings().checksum


class TestActiveSettings:
    def test_config_path_from_environment(self, tmp_path):
        path = write_yaml(tmp_path / "site.yaml", {"reports": {"recent_batch_limit": 3}})
        settings = get_active_settings(environ={"INVENTORY_CONFIG": str(path)})
        assert settings.reports.recent_batch_limit == 3

    def test_explicit_environ_isolates_process_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://elsewhere/db")
        assert get_active_settings(environ={}).database.url == "sqlite:///inventory.db"

    def test_logs_checksum(self, captured_logs):
        settings = get_active_settings(environ={})
        record = next(r for r in captured_logs() if r["message"] == "settings_loaded")
        assert record["checksum"] == settings.checksum
        assert record["logger"] == "inventory_kernel.config"
