import json
from pathlib import Path

from scriptindex.config import (DEFAULT_MAX_TOKENS_PER_CHUNK, DEFAULT_REPO_URL,
                                Config)


def _write(tmp_path, data) -> Path:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(json.dumps(data))
    return cfg_path


def test_defaults_from_empty_file(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    cfg = Config(_write(tmp_path, {"data_dir": str(tmp_path / "data")}))

    assert cfg.repo_url == DEFAULT_REPO_URL
    assert cfg.repo_branch == "main"
    assert cfg.repo_remote == "origin"
    assert cfg.max_tokens_per_chunk == DEFAULT_MAX_TOKENS_PER_CHUNK
    assert cfg.token_encoding == "cl100k_base"
    assert cfg.index_extensions == [".js", ".mjs", ".cjs", ".ts", ".tsx"]
    assert cfg.clone_path == (tmp_path / "data").resolve() / "verified-scripts"
    assert cfg.index_path == (tmp_path / "data").resolve() / "index"
    assert cfg.default_top_k == 5
    assert cfg.max_top_k == 50
    assert cfg.admin_require_api_key is False


def test_provider_is_openai_when_key_present(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    cfg = Config(_write(tmp_path, {}))

    assert cfg.embeddings_provider == "openai"
    assert cfg.embeddings_api_key == "sk-test"
    assert cfg.embeddings_model == "text-embedding-3-small"
    assert cfg.embeddings_dimension == 1536


def test_provider_falls_back_to_bedrock(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("AWS_REGION", raising=False)
    cfg = Config(_write(tmp_path, {}))

    assert cfg.embeddings_provider == "bedrock"
    assert cfg.embeddings_model == "amazon.titan-embed-text-v2:0"
    assert cfg.embeddings_dimension == 1024
    assert cfg.aws_region == "us-east-1"


def test_explicit_values_override_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    cfg = Config(
        _write(
            tmp_path,
            {
                "repository": {"clone_path": "relative/clone"},
                "index": {"max_tokens_per_chunk": 512, "extensions": ".JS, .cjs"},
                "embeddings": {"provider": "OpenAI", "dimension": 256},
            },
        )
    )

    # relative clone paths are kept so sync can reject them
    assert cfg.clone_path == Path("relative/clone")
    assert cfg.max_tokens_per_chunk == 512
    assert cfg.index_extensions == [".js", ".cjs"]
    assert cfg.embeddings_provider == "openai"
    assert cfg.embeddings_dimension == 256


def test_invalid_numbers_fall_back(tmp_path):
    cfg = Config(
        _write(
            tmp_path,
            {"index": {"max_tokens_per_chunk": "lots"}, "embeddings": {"dimension": -3}},
        )
    )

    assert cfg.max_tokens_per_chunk == DEFAULT_MAX_TOKENS_PER_CHUNK
    assert cfg.embeddings_dimension > 0


def test_env_fallback_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("SCRIPTINDEX_REPO_BRANCH", "develop")
    monkeypatch.setenv("SCRIPTINDEX_MAX_TOKENS_PER_CHUNK", "100")
    monkeypatch.setenv("SCRIPTINDEX_ADMIN_PORT", "9999")

    cfg = Config(tmp_path / "missing.json")

    assert cfg.repo_branch == "develop"
    assert cfg.max_tokens_per_chunk == 100
    assert cfg.admin_port == 9999


def test_dot_notation_get(tmp_path):
    cfg = Config(_write(tmp_path, {"a": {"b": {"c": 3}}}))
    assert cfg.get("a.b.c") == 3
    assert cfg.get("a.x.c", "d") == "d"
    assert cfg.get("a.b.c.d", "d") == "d"
