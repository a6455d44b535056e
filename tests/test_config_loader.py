import json

from inbox_agent.config.loader import camel_to_snake, convert_keys, get_config_path, load_config, save_config
from inbox_agent.config.schema import Config
from inbox_agent.utils.helpers import get_data_path


def test_data_dir_override(tmp_path, monkeypatch):
    monkeypatch.setenv("INBOX_AGENT_DATA_DIR", str(tmp_path / "data"))
    assert get_data_path() == tmp_path / "data"
    assert get_config_path() == tmp_path / "data" / "config.json"


def test_defaults_when_file_missing(tmp_path):
    config = load_config(tmp_path / "missing.json")
    assert config.server.port == 3012
    assert config.reasoning.model == "openai/gpt-4o-mini"
    assert config.admin.restart_grace_seconds == 1.0


def test_save_then_load_uses_camel_case(tmp_path):
    path = tmp_path / "config.json"
    config = Config()
    config.server.port = 8080
    config.admin.jwt_secret = "secret"
    config.modules.deny = ["legacy"]
    save_config(config, path)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["admin"]["jwtSecret"] == "secret"
    assert raw["reasoning"]["maxTokens"] == 2048

    loaded = load_config(path)
    assert loaded.server.port == 8080
    assert loaded.admin.jwt_secret == "secret"
    assert loaded.modules.deny == ["legacy"]


def test_invalid_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_config(path).server.port == 3012


def test_environment_fills_unset_values(tmp_path, monkeypatch):
    monkeypatch.setenv("INBOX_AGENT_REASONING__API_KEY", "sk-env")
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"reasoning": {"model": "anthropic/claude-3-5-haiku"}}), encoding="utf-8")
    config = load_config(path)
    assert config.reasoning.model == "anthropic/claude-3-5-haiku"
    assert config.reasoning.api_key == "sk-env"


def test_key_conversion():
    assert camel_to_snake("restartGraceSeconds") == "restart_grace_seconds"
    assert convert_keys({"tokenTtlSeconds": 5, "nested": {"apiBase": None}}) == {
        "token_ttl_seconds": 5,
        "nested": {"api_base": None},
    }


def test_default_admin_secret_is_detected(tmp_path):
    config = load_config(tmp_path / "missing.json")
    assert config.admin.uses_default_secret is True
    config.admin.jwt_secret = "rotated"
    assert config.admin.uses_default_secret is False
