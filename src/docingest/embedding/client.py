"""Embedding backend clients."""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Any, List, Optional, Protocol, Sequence

import httpx

from docingest.config import Settings, settings as default_settings
from docingest.errors import EmbeddingError

from .payloads import InferenceRequest, parse_embedding_outputs

logger = logging.getLogger(__name__)


class EmbeddingClient(Protocol):
    model_name: str

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        ...

    def close(self) -> None:
        ...


class KServeEmbeddingClient:
    """HTTP client for an embedding model served over the V2 inference protocol.

    Server errors, timeouts and connection failures are retried a bounded
    number of times with exponential backoff. Client errors (4xx) and
    malformed responses fail immediately.
    """

    def __init__(
        self,
        base_url: str,
        model_name: str,
        *,
        api_key: str = "",
        input_name: str = "text",
        dimension: Optional[int] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        max_retries: int = 2,
        backoff_seconds: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.model_name = model_name
        self.input_name = input_name
        self.dimension = dimension
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = max(0.0, backoff_seconds)
        self.infer_path = f"/v2/models/{model_name}/infer"

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            verify=verify_ssl,
            transport=transport,
        )
        logger.info("Initialized embedding client for %s%s", base_url, self.infer_path)

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        request = InferenceRequest.for_texts(texts, self.input_name)
        payload = self._post_with_retries(request.model_dump())
        vectors = parse_embedding_outputs(payload, len(texts), self.dimension)
        logger.debug("Embedded %s text(s) with %s", len(texts), self.model_name)
        return vectors

    def close(self) -> None:
        self._client.close()

    def _post_with_retries(self, body: dict) -> Any:
        attempts = self.max_retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                response = self._client.post(self.infer_path, json=body)
            except httpx.TransportError as exc:
                last_error = exc
                logger.warning(
                    "Embedding request failed (attempt %s/%s): %s", attempt + 1, attempts, exc
                )
            else:
                if response.status_code >= 500:
                    last_error = EmbeddingError(
                        f"Embedding backend error (HTTP {response.status_code}): {_error_detail(response)}"
                    )
                    logger.warning(
                        "Embedding backend returned HTTP %s (attempt %s/%s)",
                        response.status_code,
                        attempt + 1,
                        attempts,
                    )
                elif response.status_code >= 400:
                    raise EmbeddingError(
                        f"Embedding request rejected (HTTP {response.status_code}): {_error_detail(response)}"
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise EmbeddingError("Embedding backend returned invalid JSON") from exc

            if attempt < attempts - 1 and self.backoff_seconds:
                time.sleep(self.backoff_seconds * (2 ** attempt))

        raise EmbeddingError(
            f"Embedding backend unavailable after {attempts} attempt(s): {last_error}"
        ) from last_error


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or "Unknown error"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)[:200]


class StubEmbeddingClient:
    """Deterministic pseudo-embeddings derived from a SHA-256 of the text."""

    def __init__(self, dimension: int = 384, model_name: str = "stub") -> None:
        self.dimension = dimension
        self.model_name = model_name

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._embed(text) for text in texts]

    def close(self) -> None:
        return None

    def _embed(self, text: str) -> List[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [(digest[i % len(digest)] / 255.0) - 0.5 for i in range(self.dimension)]


def build_embedding_client(config: Optional[Settings] = None) -> EmbeddingClient:
    """Create the embedding client selected by ``embedding_provider``."""
    config = config or default_settings
    if config.embedding_provider == "stub":
        return StubEmbeddingClient(config.embedding_dimension, model_name=f"stub-{config.embedding_model}")
    if config.embedding_provider == "kserve":
        return KServeEmbeddingClient(
            config.embedding_base_url,
            config.embedding_model,
            api_key=config.embedding_api_key,
            input_name=config.embedding_input_name,
            dimension=config.embedding_dimension,
            timeout=config.embedding_timeout,
            verify_ssl=config.embedding_verify_ssl,
            max_retries=config.embedding_max_retries,
            backoff_seconds=config.embedding_backoff_seconds,
        )
    raise ValueError(f"Unknown embedding provider: {config.embedding_provider!r}")
