# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Embedding providers for function chunks and retrieval queries.

Two interchangeable backends are supported: OpenAI (keyed by an API key) and
AWS Bedrock (ambient AWS credentials). Exactly one is active per process and
every vector it returns has the configured dimension.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import boto3
import numpy as np
from openai import OpenAI

from .config import Config
from .errors import EmbeddingError, ValidationError

logger = logging.getLogger(__name__)

# Models in this family accept an explicit output dimension
OPENAI_DIMENSION_MODELS = ("text-embedding-3",)


@dataclass
class EmbeddingResult:
    vector: list[float]
    text: str


class EmbeddingProvider:
    """Validates inputs and outputs around a backend-specific ``_embed`` call."""

    name = "base"

    def __init__(self, model: str, dimension: int):
        if dimension <= 0:
            raise ValidationError("Embedding dimension must be a positive integer")
        self.model = model
        self.dimension = dimension

    def _embed(self, texts: list[str]) -> list[list[float]]:
        raise NotImplementedError

    def describe(self) -> str:
        return f"{self.name} ({self.model}, dim={self.dimension})"

    def embed_text(self, text: str) -> list[float]:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text cannot be empty")
        return self._call([text], "embedding")[0]

    def embed_many_texts(self, texts: Sequence[str]) -> list[EmbeddingResult]:
        if not texts:
            raise ValidationError("Texts array cannot be empty")
        if any(not isinstance(t, str) or not t.strip() for t in texts):
            raise ValidationError("All texts must be non-empty strings")
        batch = list(texts)
        vectors = self._call(batch, "embeddings")
        return [EmbeddingResult(vector=v, text=t) for v, t in zip(vectors, batch)]

    def _call(self, texts: list[str], noun: str) -> list[list[float]]:
        try:
            raw = self._embed(texts)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Failed to generate {noun}: {exc}", exc) from exc

        if len(raw) != len(texts):
            raise EmbeddingError(
                f"Embedding count mismatch: expected {len(texts)}, got {len(raw)}"
            )
        vectors = []
        for idx, vec in enumerate(raw):
            arr = np.asarray(vec, dtype="float32")
            if arr.ndim != 1 or arr.shape[0] != self.dimension:
                raise EmbeddingError(
                    f"Embedding dimension mismatch at index {idx}: "
                    f"expected {self.dimension}, got {arr.shape[-1] if arr.ndim else 0}"
                )
            vectors.append(arr.tolist())
        return vectors


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        client: Any = None,
    ):
        super().__init__(model, dimension)
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> Any:
        """Lazy-create the OpenAI client on first use."""
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise EmbeddingError("OPENAI_API_KEY is not set; cannot use the OpenAI embedding backend")
        self._client = OpenAI(api_key=self._api_key)
        return self._client

    def _embed(self, texts: list[str]) -> list[list[float]]:
        kwargs: dict[str, Any] = {"model": self.model, "input": texts}
        if self.model.startswith(OPENAI_DIMENSION_MODELS):
            kwargs["dimensions"] = self.dimension
        response = self._get_client().embeddings.create(**kwargs)
        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]


class BedrockEmbeddingProvider(EmbeddingProvider):
    """Amazon Titan text embeddings through the Bedrock runtime, one request per text."""

    name = "bedrock"

    def __init__(
        self,
        region: str = "us-east-1",
        profile: Optional[str] = None,
        model: str = "amazon.titan-embed-text-v2:0",
        dimension: int = 1024,
        client: Any = None,
    ):
        super().__init__(model, dimension)
        self._region = region
        self._profile = profile
        self._client = client

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        session_kwargs: dict[str, Any] = {"region_name": self._region}
        if self._profile:
            session_kwargs["profile_name"] = self._profile
        session = boto3.Session(**session_kwargs)
        self._client = session.client("bedrock-runtime")
        return self._client

    def _embed(self, texts: list[str]) -> list[list[float]]:
        client = self._get_client()
        vectors = []
        for text in texts:
            body = {"inputText": text, "dimensions": self.dimension, "normalize": True}
            response = client.invoke_model(
                modelId=self.model,
                body=json.dumps(body),
                contentType="application/json",
                accept="application/json",
            )
            payload = json.loads(response["body"].read())
            vectors.append(payload["embedding"])
        return vectors


def has_aws_credentials(profile: Optional[str] = None) -> bool:
    """True when the boto3 credential chain resolves to something usable."""
    try:
        session = boto3.Session(profile_name=profile) if profile else boto3.Session()
        return session.get_credentials() is not None
    except Exception:
        logger.debug("AWS credential lookup failed", exc_info=True)
        return False


def has_embedding_provider(config: Config) -> bool:
    if config.embeddings_provider == "openai":
        return bool(config.embeddings_api_key)
    if config.embeddings_provider == "bedrock":
        return has_aws_credentials(config.aws_profile)
    return False


def describe_embedding_provider(config: Config) -> str:
    provider = config.embeddings_provider
    if provider == "openai":
        return f"OpenAI ({config.embeddings_model}, dim={config.embeddings_dimension})"
    if provider == "bedrock":
        return (
            f"AWS Bedrock ({config.embeddings_model}, dim={config.embeddings_dimension}, "
            f"region={config.aws_region})"
        )
    return f"unknown provider {provider!r}"


def create_embedding_provider(config: Config) -> EmbeddingProvider:
    """Build the single active backend selected by configuration."""
    provider = config.embeddings_provider
    logger.info("Embedding provider: %s", describe_embedding_provider(config))
    if provider == "openai":
        return OpenAIEmbeddingProvider(
            api_key=config.embeddings_api_key,
            model=config.embeddings_model,
            dimension=config.embeddings_dimension,
        )
    if provider == "bedrock":
        return BedrockEmbeddingProvider(
            region=config.aws_region,
            profile=config.aws_profile,
            model=config.embeddings_model,
            dimension=config.embeddings_dimension,
        )
    raise ValidationError(f"Unknown embeddings provider: {provider!r}")
