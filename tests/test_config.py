import json
import sys
from pathlib import Path

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from orchestrate.config import load_run_config, load_settings


RUN_CONFIG = """
fetch:
  timeout: 20
  js_always: true
  max_attempts: 5
scoring:
  keyword_weights:
    acfr: 4
    audit: 1.5
database:
  path: /tmp/linkscout-test.db
search:
  page_size: 25
rate_limit:
  max_requests: 50
log_level: DEBUG
"""


class TestLoadRunConfig:

    def test_yaml(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text(RUN_CONFIG, encoding="utf-8")
        cfg = load_run_config(str(path))
        assert cfg["fetch"]["timeout"] == 20
        assert cfg["search"]["page_size"] == 25

    def test_json(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({"search": {"page_size": 5}}), encoding="utf-8")
        assert load_run_config(str(path)) == {"search": {"page_size": 5}}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_run_config(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_run_config(str(tmp_path / "nope.yaml"))

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_run_config(str(path))


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings(env={})
        assert settings.fetch.max_concurrent == 10
        assert settings.database.pool_size == 20
        assert settings.search.page_size == 100
        assert settings.rate_limit.window_seconds == 60.0
        assert settings.rate_limit.max_requests == 1000
        assert settings.scoring.keyword_weights["acfr"] == 3.0

    def test_production_scaling(self):
        settings = load_settings(env={"LINKSCOUT_ENV": "production"})
        assert settings.fetch.max_concurrent == 100
        assert settings.database.pool_size == 100

    def test_file_layer(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text(RUN_CONFIG, encoding="utf-8")
        settings = load_settings(str(path), env={})
        assert settings.fetch.timeout == 20
        assert settings.fetch.js_always is True
        assert settings.fetch.max_attempts == 5
        assert dict(settings.scoring.keyword_weights) == {"acfr": 4.0, "audit": 1.5}
        assert settings.database.path == "/tmp/linkscout-test.db"
        assert settings.search.page_size == 25
        assert settings.rate_limit.max_requests == 50
        assert settings.log_level == "DEBUG"

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text(RUN_CONFIG, encoding="utf-8")
        env = {
            "LINKSCOUT_CONFIG": str(path),
            "LINKSCOUT_PAGE_SIZE": "7",
            "LINKSCOUT_DB_PATH": str(tmp_path / "env.db"),
            "LINKSCOUT_MAX_CONCURRENT": "3",
            "LINKSCOUT_LOG_LEVEL": "WARNING",
        }
        settings = load_settings(env=env)
        assert settings.search.page_size == 7
        assert settings.database.path == str(tmp_path / "env.db")
        assert settings.fetch.max_concurrent == 3
        assert settings.fetch.timeout == 20
        assert settings.log_level == "WARNING"

    def test_bad_env_value(self):
        with pytest.raises(ValueError, match="LINKSCOUT_DB_POOL_SIZE"):
            load_settings(env={"LINKSCOUT_DB_POOL_SIZE": "lots"})
