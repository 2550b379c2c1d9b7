"""Tests for configuration loading and logging setup."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.config import DEFAULT_CONFIG, apply_env_overrides, load_config
from common.logging import level_from_name, setup_logging


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_config(None, environ={})
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "nope.yaml"), environ={})
        assert config["schedule"]["frame_count"] == 60

    def test_yaml_is_merged_over_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("schedule:\n  frame_count: 10\nstorage:\n  save_image_path: /data\n")
        config = load_config(str(path), environ={})
        assert config["schedule"]["frame_count"] == 10
        assert config["schedule"]["interval_sec"] == 1
        assert config["storage"]["save_image_path"] == "/data"
        assert config["storage"]["image_ext"] == "jpg"

    def test_environment_wins_over_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("schedule:\n  frame_count: 10\n")
        env = {"FRAME_COUNT": "25", "SCHEDULE_DURATION": "5", "FRAME_DELAY": "20"}
        config = load_config(str(path), environ=env)
        assert config["schedule"]["frame_count"] == 25
        assert config["schedule"]["interval_sec"] == 5
        assert config["schedule"]["frame_delay_ms"] == 20

    def test_invalid_env_value_is_ignored(self, caplog):
        config = {"schedule": {"frame_count": 60}}
        with caplog.at_level(logging.WARNING, logger="common.config"):
            apply_env_overrides(config, {"FRAME_COUNT": "lots", "WINDOW_WIDTH": "640"})
        assert config["schedule"]["frame_count"] == 60
        assert config["preview"]["window_width"] == 640
        assert "FRAME_COUNT" in caplog.text

    def test_empty_env_value_is_ignored(self):
        config = {"schedule": {"frame_count": 60}}
        apply_env_overrides(config, {"FRAME_COUNT": ""})
        assert config["schedule"]["frame_count"] == 60

    def test_invalid_yaml_raises_value_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("schedule: [unclosed\n")
        with pytest.raises(ValueError):
            load_config(str(path), environ={})

    def test_non_mapping_yaml_raises_value_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_config(str(path), environ={})


class TestSetupLogging:
    def teardown_method(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            if getattr(handler, "_homewatch", False):
                root.removeHandler(handler)
                handler.close()
        root.setLevel(logging.WARNING)
        for name in ("apscheduler", "apscheduler.scheduler"):
            logging.getLogger(name).setLevel(logging.NOTSET)

    def test_level_names(self):
        assert level_from_name("debug") == logging.DEBUG
        assert level_from_name("WARNING") == logging.WARNING
        assert level_from_name("bogus") == logging.INFO

    def test_file_handler_is_installed_once(self, tmp_path):
        cfg = {"level": "INFO", "log_dir": str(tmp_path), "filename": "hw.log", "max_bytes": 1000, "backup_count": 2}
        setup_logging(cfg)
        setup_logging(cfg)

        root = logging.getLogger()
        rotating = [h for h in root.handlers if isinstance(h, RotatingFileHandler) and getattr(h, "_homewatch", False)]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 1000
        assert rotating[0].backupCount == 2

        logging.getLogger("homewatch.test").info("hello file")
        rotating[0].flush()
        assert "hello file" in (tmp_path / "hw.log").read_text()

    def test_overlapping_fire_warnings_are_quiet_outside_debug(self, tmp_path):
        cfg = {"level": "INFO", "log_dir": str(tmp_path)}
        setup_logging(cfg)
        assert not logging.getLogger("apscheduler.scheduler").isEnabledFor(logging.WARNING)
        assert logging.getLogger("apscheduler.executors.default").isEnabledFor(logging.WARNING)

        setup_logging(dict(cfg, level="DEBUG"))
        assert logging.getLogger("apscheduler.scheduler").isEnabledFor(logging.WARNING)
