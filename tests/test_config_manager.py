from __future__ import annotations

import json
import os

import pytest

from plantops.core.config import ConfigFsPaths, ConfigManager
from plantops.core.config.io import atomic_write_json, read_json_file
from plantops.core.config.models import AccessPolicy, AppConfig
from plantops.core.errors import ConfigError


class DummyLogger:
    def info(self, *_a, **_k): ...
    def warning(self, *_a, **_k): ...
    def error(self, *_a, **_k): ...


def test_missing_config_writes_defaults(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=DummyLogger())
    cfg = cm.load()

    assert cfg.backend.request_timeout_seconds == 10.0
    assert cfg.session.max_age_hours == 24.0
    assert os.path.exists(tmp_config_root.app)
    on_disk = read_json_file(tmp_config_root.app)
    assert on_disk.ok and on_disk.data["navigation"]["default_view"] == "dashboard"


def test_default_views_and_policies():
    cfg = AppConfig()
    policies = {v.id: v.access_policy for v in cfg.navigation.views}
    assert policies["login"] == AccessPolicy.public
    assert policies["dashboard"] == AccessPolicy.authenticated
    assert policies["config"] == AccessPolicy.supervisor_only
    assert set(cfg.auth.fallback_users) == {"operador", "supervisor"}


def test_unknown_fields_rejected(tmp_config_root):
    atomic_write_json(tmp_config_root.app, {"backend": {"api_base_url": "http://x", "surprise": 1}})
    cm = ConfigManager(fs=tmp_config_root, logger=DummyLogger())
    with pytest.raises(ConfigError) as exc:
        cm.load()
    assert exc.value.code == "config_error"


def test_corrupt_json_restored_from_last_known_good(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=DummyLogger())
    cfg = cm.load()
    cm.save(cfg.model_copy(update={"config_version": 3}))

    with open(tmp_config_root.app, "w", encoding="utf-8") as f:
        f.write("{oops")

    restored = ConfigManager(fs=tmp_config_root, logger=DummyLogger()).load()
    assert restored.config_version == 3
    backups = os.listdir(tmp_config_root.backups_dir)
    assert any(name.endswith(".corrupt.json") for name in backups)


def test_corrupt_json_without_lkg_falls_back_to_defaults(tmp_path):
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    with open(fs.app, "w", encoding="utf-8") as f:
        f.write("not json")
    cfg = ConfigManager(fs=fs, logger=DummyLogger()).load()
    assert cfg == AppConfig()


def test_read_only_manager_never_writes(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=DummyLogger(), read_only=True)
    cm.load()
    assert not os.path.exists(tmp_config_root.app)
    with pytest.raises(ConfigError):
        cm.save(AppConfig())


def test_read_only_manager_leaves_corrupt_file_alone(tmp_config_root):
    writer = ConfigManager(fs=tmp_config_root, logger=DummyLogger())
    writer.save(writer.load().model_copy(update={"config_version": 4}))
    with open(tmp_config_root.app, "w", encoding="utf-8") as f:
        f.write("not json")
    before = sorted(os.listdir(tmp_config_root.backups_dir))

    cfg = ConfigManager(fs=tmp_config_root, logger=DummyLogger(), read_only=True).load()

    assert cfg.config_version == 4
    with open(tmp_config_root.app, encoding="utf-8") as f:
        assert f.read() == "not json"
    assert sorted(os.listdir(tmp_config_root.backups_dir)) == before


def test_read_only_manager_creates_no_directories(tmp_path):
    fs = ConfigFsPaths(root=str(tmp_path / "fresh"))
    cfg = ConfigManager(fs=fs, logger=DummyLogger(), read_only=True).load()
    assert cfg == AppConfig()
    assert not os.path.exists(fs.config_dir)


def test_fallback_user_keys_are_lower_cased(tmp_config_root):
    raw = AppConfig().model_dump(mode="json")
    raw["auth"]["fallback_users"] = {"Tecnico": {"id": "t1", "password": "x", "role": "operator", "name": "Tec"}}
    with open(tmp_config_root.app, "w", encoding="utf-8") as f:
        json.dump(raw, f)
    cfg = ConfigManager(fs=tmp_config_root, logger=DummyLogger()).load()
    assert list(cfg.auth.fallback_users) == ["tecnico"]
