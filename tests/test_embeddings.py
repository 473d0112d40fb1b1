import io
import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from scriptindex.config import Config
from scriptindex.embeddings import (BedrockEmbeddingProvider,
                                    OpenAIEmbeddingProvider,
                                    create_embedding_provider,
                                    describe_embedding_provider,
                                    has_embedding_provider)
from scriptindex.errors import EmbeddingError, ValidationError


def _openai_response(vectors, order=None):
    order = order if order is not None else range(len(vectors))
    return SimpleNamespace(
        data=[SimpleNamespace(index=i, embedding=vectors[i]) for i in order]
    )


def _openai_provider(response=None, side_effect=None, dimension=3):
    client = MagicMock()
    client.embeddings.create.return_value = response
    client.embeddings.create.side_effect = side_effect
    return OpenAIEmbeddingProvider(api_key="sk", dimension=dimension, client=client), client


def test_embed_text_returns_vector():
    provider, client = _openai_provider(_openai_response([[0.1, 0.2, 0.3]]))

    assert provider.embed_text("hello") == pytest.approx([0.1, 0.2, 0.3])
    kwargs = client.embeddings.create.call_args.kwargs
    assert kwargs["input"] == ["hello"]
    assert kwargs["dimensions"] == 3


def test_embed_many_keeps_input_order():
    provider, _ = _openai_provider(
        _openai_response([[1.0, 0, 0], [0, 1.0, 0]], order=[1, 0])
    )

    results = provider.embed_many_texts(["a", "b"])

    assert [r.text for r in results] == ["a", "b"]
    assert results[0].vector == pytest.approx([1.0, 0, 0])
    assert results[1].vector == pytest.approx([0, 1.0, 0])


@pytest.mark.parametrize("text", ["", "   "])
def test_empty_text_rejected_before_call(text):
    provider, client = _openai_provider()
    with pytest.raises(ValidationError, match="Text cannot be empty"):
        provider.embed_text(text)
    client.embeddings.create.assert_not_called()


def test_empty_batch_rejected():
    provider, _ = _openai_provider()
    with pytest.raises(ValidationError, match="Texts array cannot be empty"):
        provider.embed_many_texts([])
    with pytest.raises(ValidationError, match="All texts must be non-empty strings"):
        provider.embed_many_texts(["ok", " "])


def test_backend_failure_is_wrapped():
    provider, _ = _openai_provider(side_effect=RuntimeError("rate limited"))
    with pytest.raises(EmbeddingError, match="Failed to generate embedding: rate limited"):
        provider.embed_text("x")
    with pytest.raises(EmbeddingError, match="Failed to generate embeddings: rate limited"):
        provider.embed_many_texts(["x"])


def test_count_mismatch_is_an_error():
    provider, _ = _openai_provider(_openai_response([[0.1, 0.2, 0.3]]))
    with pytest.raises(EmbeddingError, match="Embedding count mismatch: expected 2, got 1"):
        provider.embed_many_texts(["a", "b"])


def test_dimension_mismatch_is_an_error():
    provider, _ = _openai_provider(_openai_response([[0.1, 0.2]]))
    with pytest.raises(EmbeddingError, match="dimension mismatch"):
        provider.embed_text("a")


def test_openai_without_key_fails_on_use():
    provider = OpenAIEmbeddingProvider(api_key=None, dimension=3)
    with pytest.raises(EmbeddingError, match="OPENAI_API_KEY"):
        provider.embed_text("a")


def test_bedrock_invokes_model_per_text():
    client = MagicMock()
    client.invoke_model.side_effect = [
        {"body": io.BytesIO(json.dumps({"embedding": [0.5, 0.5]}).encode())},
        {"body": io.BytesIO(json.dumps({"embedding": [0.1, 0.9]}).encode())},
    ]
    provider = BedrockEmbeddingProvider(dimension=2, client=client)

    results = provider.embed_many_texts(["one", "two"])

    assert [r.vector for r in results] == [pytest.approx([0.5, 0.5]), pytest.approx([0.1, 0.9])]
    first = client.invoke_model.call_args_list[0].kwargs
    assert first["modelId"] == "amazon.titan-embed-text-v2:0"
    assert json.loads(first["body"]) == {"inputText": "one", "dimensions": 2, "normalize": True}


def _config(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data))
    return Config(path)


def test_factory_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    cfg = _config(tmp_path, {"embeddings": {"api_key": "sk-1"}})
    provider = create_embedding_provider(cfg)
    assert isinstance(provider, OpenAIEmbeddingProvider)
    assert provider.dimension == 1536
    assert has_embedding_provider(cfg)
    assert describe_embedding_provider(cfg).startswith("OpenAI")

    cfg = _config(tmp_path, {"embeddings": {"provider": "bedrock", "aws_region": "eu-west-1"}})
    provider = create_embedding_provider(cfg)
    assert isinstance(provider, BedrockEmbeddingProvider)
    assert provider.dimension == 1024
    assert "eu-west-1" in describe_embedding_provider(cfg)


def test_factory_rejects_unknown_provider(tmp_path):
    cfg = _config(tmp_path, {"embeddings": {"provider": "ollama"}})
    with pytest.raises(ValidationError):
        create_embedding_provider(cfg)
    assert has_embedding_provider(cfg) is False


def test_bedrock_availability_follows_credential_chain(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    cfg = _config(tmp_path, {})
    with patch("scriptindex.embeddings.boto3.Session") as session:
        session.return_value.get_credentials.return_value = None
        assert has_embedding_provider(cfg) is False
        session.return_value.get_credentials.return_value = object()
        assert has_embedding_provider(cfg) is True
