"""
Embeddings — soulsmith
Embedding gateway: text -> fixed-dimension vector.

Two backends:
- EmbeddingModel: lazy-loaded local sentence-transformer (CPU only)
- HttpEmbeddingModel: OpenAI-compatible /v1/embeddings endpoint over httpx

Both raise EmbeddingUnavailable when the backend cannot produce a vector.
There is no zero-vector fallback: a fake vector would silently corrupt
centroid math downstream.
"""

import logging
import math
import threading
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "nomic-ai/nomic-embed-text-v1.5"
DEFAULT_REMOTE_MODEL = "nomic-embed-text"


class EmbeddingUnavailable(Exception):
    """The upstream vector source is unreachable or returned garbage."""


class EmbeddingGateway(Protocol):
    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


def _check_vector(vec: list[float], expected_dim: Optional[int], model_name: str) -> list[float]:
    if not vec:
        raise EmbeddingUnavailable(f"{model_name} returned an empty embedding")
    if expected_dim is not None and len(vec) != expected_dim:
        raise EmbeddingUnavailable(
            f"{model_name} dimension mismatch: expected {expected_dim}, got {len(vec)}"
        )
    if not all(math.isfinite(v) for v in vec):
        raise EmbeddingUnavailable(f"{model_name} returned non-finite values")
    return vec


# ── Local model ───────────────────────────────────────────────────────────────

class EmbeddingModel:
    """Lazy-loaded sentence-transformer for signal embeddings (CPU only)."""

    def __init__(self, model_name: str = DEFAULT_LOCAL_MODEL, expected_dim: Optional[int] = None):
        self.model_name = model_name
        self.expected_dim = expected_dim
        self._model = None
        self._lock = threading.Lock()

    def _load_model(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    try:
                        from sentence_transformers import SentenceTransformer
                        self._model = SentenceTransformer(
                            self.model_name,
                            trust_remote_code=True,
                            device="cpu",
                        )
                    except Exception as e:
                        raise EmbeddingUnavailable(
                            f"could not load embedding model {self.model_name}: {e}"
                        ) from e
                    logger.info("Loaded embedding model %s", self.model_name)

    def embed(self, text: str) -> list[float]:
        self._load_model()
        vec = self._model.encode(
            text, convert_to_numpy=True, normalize_embeddings=True
        ).tolist()
        return _check_vector(vec, self.expected_dim, self.model_name)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        self._load_model()
        vecs = self._model.encode(
            texts, convert_to_numpy=True, normalize_embeddings=True, batch_size=8
        ).tolist()
        return [_check_vector(v, self.expected_dim, self.model_name) for v in vecs]


# ── Remote model ──────────────────────────────────────────────────────────────

class HttpEmbeddingModel:
    """
    Embeddings from an OpenAI-compatible server (llama.cpp, Ollama, vLLM...).
    Pass `client` to reuse a connection pool or to inject a mock transport.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        model: str = DEFAULT_REMOTE_MODEL,
        expected_dim: Optional[int] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.expected_dim = expected_dim
        self.timeout = timeout
        self._client = client

    def _post(self, inputs: list[str]) -> list[list[float]]:
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            response = client.post(
                f"{self.base_url}/v1/embeddings",
                json={"model": self.model, "input": inputs},
            )
            response.raise_for_status()
            data = response.json()["data"]
        except httpx.HTTPError as e:
            raise EmbeddingUnavailable(f"embedding backend error: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingUnavailable(f"malformed embedding response: {e}") from e
        finally:
            if self._client is None:
                client.close()

        if len(data) != len(inputs):
            raise EmbeddingUnavailable(
                f"embedding backend returned {len(data)} vectors for {len(inputs)} inputs"
            )
        # Servers may return items out of order; "index" is authoritative.
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        try:
            vecs = [[float(v) for v in item["embedding"]] for item in ordered]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingUnavailable(f"malformed embedding response: {e}") from e
        return [_check_vector(v, self.expected_dim, self.model) for v in vecs]

    def embed(self, text: str) -> list[float]:
        return self._post([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return self._post(list(texts))
