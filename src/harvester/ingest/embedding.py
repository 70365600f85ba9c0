"""Text embedders: LiteLLM-hosted models, a generic HTTP endpoint, and a mock.

The provider set is closed: ``EmbeddingProvider`` names every option and
``build_embedder()`` maps configuration to an instance. All embedders are
safe to call from several worker threads at once.
"""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from enum import Enum

import litellm

from harvester.config import EmbeddingCfg

# Environment variable holding the bearer key for the HTTP provider.
HTTP_API_KEY_ENV = "HARVESTER_EMBEDDING_API_KEY"

_HTTP_TIMEOUT = 30  # seconds

_PROVIDER_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
}

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_LCG_MULTIPLIER = 6364136223846793005
_MASK64 = (1 << 64) - 1
_UINT32_MAX = 0xFFFFFFFF


class EmbeddingError(RuntimeError):
    """Raised when a provider cannot produce an embedding."""


class EmbeddingProvider(str, Enum):
    LITELLM = "litellm"
    HTTP = "http"
    MOCK = "mock"


class Embedder(ABC):
    """Map text to a fixed-length vector."""

    model: str
    dimensions: int

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises:
            EmbeddingError: If the provider fails or returns no vector.
        """


# ---------------------------------------------------------------------------
# LiteLLM
# ---------------------------------------------------------------------------


class LiteLLMEmbedder(Embedder):
    """Hosted embedding models via ``litellm.embedding()``.

    The model string carries the provider prefix (``openai/...``,
    ``gemini/...``). Provider API keys are read from the environment by
    litellm; a missing key for a known provider fails before any call.
    """

    def __init__(
        self, model: str = "openai/text-embedding-3-small", dimensions: int = 1536
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.check_api_key()

    def check_api_key(self) -> None:
        """Raise EmbeddingError if no API key is available for the model's provider."""
        provider = self.model.split("/")[0].lower() if "/" in self.model else ""
        required_env = _PROVIDER_KEY_ENV.get(provider)
        if required_env and not os.environ.get(required_env):
            raise EmbeddingError(
                f"No API key found for provider '{provider}'. "
                f"Set the {required_env} environment variable."
            )

    def embed(self, text: str) -> list[float]:
        try:
            response = litellm.embedding(model=self.model, input=[text])
        except Exception as exc:
            raise EmbeddingError(f"embedding call to '{self.model}' failed: {exc}") from exc
        return list(response.data[0]["embedding"])


# ---------------------------------------------------------------------------
# Generic HTTP endpoint
# ---------------------------------------------------------------------------


class HTTPEmbedder(Embedder):
    """POST ``{"input": text, "model": model}`` to a JSON embedding endpoint.

    Accepts ``{"embedding": [...]}`` or OpenAI-style
    ``{"data": [{"embedding": [...]}]}`` responses.

    Args:
        endpoint: Full URL of the embedding endpoint.
        model: Model name sent with each request (omitted when empty).
        api_key: Optional key sent as ``Bearer <key>``; defaults to
            ``$HARVESTER_EMBEDDING_API_KEY``.
        auth_header: Header that carries the bearer key.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        endpoint: str,
        model: str = "",
        api_key: str | None = None,
        auth_header: str = "Authorization",
        dimensions: int = 0,
        timeout: float = _HTTP_TIMEOUT,
    ) -> None:
        if not endpoint:
            raise EmbeddingError(
                "HTTP embedder requires an endpoint. "
                "Set embedding.endpoint or HARVESTER_EMBEDDING_ENDPOINT."
            )
        self.endpoint = endpoint
        self.model = model
        self.dimensions = dimensions
        self.auth_header = auth_header or "Authorization"
        self._api_key = api_key if api_key is not None else os.environ.get(HTTP_API_KEY_ENV, "")
        self._timeout = timeout

    def embed(self, text: str) -> list[float]:
        payload: dict[str, str] = {"input": text}
        if self.model:
            payload["model"] = self.model
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers[self.auth_header] = f"Bearer {self._api_key}"
        request = urllib.request.Request(
            self.endpoint,
            data=json.dumps(payload).encode("utf-8"),
            headers=headers,
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            raise EmbeddingError(f"embedding endpoint returned status {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise EmbeddingError(f"embedding endpoint unreachable: {exc}") from exc

        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise EmbeddingError(f"embedding endpoint returned invalid JSON: {exc}") from exc
        return _vector_from_response(data)


def _vector_from_response(data: object) -> list[float]:
    if isinstance(data, dict):
        vector = data.get("embedding")
        if vector:
            return [float(v) for v in vector]
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            vector = items[0].get("embedding")
            if vector:
                return [float(v) for v in vector]
    raise EmbeddingError("no embedding in response")


# ---------------------------------------------------------------------------
# Mock
# ---------------------------------------------------------------------------


def _fnv1a_64(data: bytes) -> int:
    h = _FNV64_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV64_PRIME) & _MASK64
    return h


class MockEmbedder(Embedder):
    """Deterministic pseudo-random vectors for tests and offline runs.

    The FNV-1a 64-bit hash of the UTF-8 text seeds a 64-bit LCG; each
    component is the high 32 bits of the next state divided by 2**32 - 1,
    so values lie in [0, 1]. Equal texts always yield equal vectors.
    """

    def __init__(self, dimensions: int = 768, model: str = "mock") -> None:
        self.dimensions = dimensions if dimensions > 0 else 768
        self.model = model

    def embed(self, text: str) -> list[float]:
        x = _fnv1a_64(text.encode("utf-8")) | 1
        out: list[float] = []
        for _ in range(self.dimensions):
            x = (_LCG_MULTIPLIER * x + 1) & _MASK64
            out.append(((x >> 32) & _UINT32_MAX) / _UINT32_MAX)
        return out


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_embedder(cfg: EmbeddingCfg) -> Embedder:
    """Instantiate the embedder selected by *cfg.provider*.

    Raises:
        EmbeddingError: Unknown provider, or provider prerequisites missing.
    """
    try:
        provider = EmbeddingProvider(cfg.provider.lower())
    except ValueError:
        raise EmbeddingError(
            f"unknown embedding provider '{cfg.provider}' (expected litellm, http or mock)"
        ) from None

    if provider is EmbeddingProvider.MOCK:
        return MockEmbedder(dimensions=cfg.dimensions)
    if provider is EmbeddingProvider.HTTP:
        return HTTPEmbedder(
            endpoint=cfg.endpoint,
            model=cfg.model,
            auth_header=cfg.auth_header,
            dimensions=cfg.dimensions,
        )
    return LiteLLMEmbedder(model=cfg.model, dimensions=cfg.dimensions)
