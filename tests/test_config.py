import json

import pytest

from ideabot.config import ConfigError, ConfigStore, Settings, run_allowed_users


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


def test_load_creates_default_config(tmp_path):
    path = tmp_path / "home" / "configs.json"
    store = ConfigStore(path)

    config = store.load()

    assert config.default_bot_id == ""
    assert config.bots == {}
    assert json.loads(path.read_text(encoding="utf-8"))["bots"] == {}


def test_load_reads_existing_config(tmp_path):
    path = tmp_path / "configs.json"
    _write(
        path,
        {
            "default_bot_id": "main",
            "bots": {"main": {"id": "main", "token": "123:abc"}},
            "default_ai_model": "mistral",
            "default_ai_prompt": "Be brief.",
        },
    )

    config = ConfigStore(path).load()

    assert config.default_bot_id == "main"
    assert config.bots["main"].token == "123:abc"
    assert config.default_ai_model == "mistral"
    assert config.default_ai_prompt == "Be brief."


def test_missing_bots_map_is_filled_and_saved(tmp_path):
    path = tmp_path / "configs.json"
    _write(path, {"default_bot_id": "", "bots": None})

    ConfigStore(path).load()

    assert json.loads(path.read_text(encoding="utf-8"))["bots"] == {}


def test_corrupt_config_uses_defaults_and_leaves_file(tmp_path, caplog):
    path = tmp_path / "configs.json"
    path.write_text("{broken", encoding="utf-8")

    config = ConfigStore(path).load()

    assert config.default_ai_model == ""
    assert path.read_text(encoding="utf-8") == "{broken"
    assert "unreadable" in caplog.text


def test_set_default_ai_model_persists(tmp_path):
    path = tmp_path / "configs.json"
    store = ConfigStore(path)
    store.load()

    assert store.set_default_ai_model("mistral") is True

    assert store.snapshot().default_ai_model == "mistral"
    assert json.loads(path.read_text(encoding="utf-8"))["default_ai_model"] == "mistral"
    assert ConfigStore(path).load().default_ai_model == "mistral"


def test_set_default_ai_model_keeps_memory_change_when_save_fails(tmp_path, monkeypatch):
    store = ConfigStore(tmp_path / "configs.json")
    store.load()

    def _fail(path, data):
        raise OSError("disk full")

    monkeypatch.setattr("ideabot.config.write_json_atomic", _fail)

    assert store.set_default_ai_model("phi3") is False
    assert store.snapshot().default_ai_model == "phi3"


def test_snapshot_is_a_copy(tmp_path):
    store = ConfigStore(tmp_path / "configs.json")
    store.load()

    snapshot = store.snapshot()
    snapshot.default_ai_model = "changed"

    assert store.snapshot().default_ai_model == ""


class TestResolveBotToken:
    def test_override_wins(self, tmp_path):
        store = ConfigStore(tmp_path / "configs.json")
        store.load()
        assert store.resolve_bot_token("env-token") == "env-token"

    def test_default_bot_token(self, tmp_path):
        path = tmp_path / "configs.json"
        _write(path, {"default_bot_id": "b1", "bots": {"b1": {"id": "b1", "token": "t1"}}})
        store = ConfigStore(path)
        store.load()
        assert store.resolve_bot_token() == "t1"

    def test_no_default_bot(self, tmp_path):
        store = ConfigStore(tmp_path / "configs.json")
        store.load()
        with pytest.raises(ConfigError, match="No default bot"):
            store.resolve_bot_token()

    def test_unknown_default_bot(self, tmp_path):
        path = tmp_path / "configs.json"
        _write(path, {"default_bot_id": "missing", "bots": {}})
        store = ConfigStore(path)
        store.load()
        with pytest.raises(ConfigError, match="not found"):
            store.resolve_bot_token()

    def test_empty_token(self, tmp_path):
        path = tmp_path / "configs.json"
        _write(path, {"default_bot_id": "b1", "bots": {"b1": {"id": "b1", "token": ""}}})
        store = ConfigStore(path)
        store.load()
        with pytest.raises(ConfigError, match="empty token"):
            store.resolve_bot_token()


def test_settings_paths_and_allowed_users(tmp_path, monkeypatch):
    monkeypatch.setenv("IDEABOT_HOME", str(tmp_path))
    monkeypatch.setenv("RUN_ALLOWED_USERS", "42, 7,not-a-number,")

    settings = Settings(_env_file=None)

    assert settings.config_path == tmp_path / "configs.json"
    assert settings.process_path == tmp_path / "process.json"
    assert settings.autoreply_path == tmp_path / "auto.json"
    assert settings.database_path == tmp_path / "data.db"
    assert run_allowed_users(settings) == frozenset({42, 7})
