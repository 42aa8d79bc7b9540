"""
Embedding provider clients.

Every provider satisfies the same contract:

    await provider.embed(texts, model_id) -> list[list[float]]

with one vector per input text, in input order. Provider selection is an
explicit ProviderKind resolved once by create_provider(); there is one
class per wire format:

    - HuggingFaceProvider: HuggingFace Inference feature-extraction pipeline
    - OpenAICompatibleProvider: POST /embeddings (OpenAI, Mistral, OpenRouter)
    - OllamaProvider: POST /api/embed on a local Ollama server

HTTP 429 and 5xx responses are retried with exponential backoff. Anything
that still fails surfaces as ProviderFailure.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Protocol, Union

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ragcore.exceptions import InvalidConfiguration, ProviderFailure

if TYPE_CHECKING:
    from ragcore.config import Settings

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    HUGGINGFACE = "huggingface"
    OPENAI = "openai"
    MISTRAL = "mistral"
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"


DEFAULT_BASE_URLS: dict[ProviderKind, str] = {
    ProviderKind.HUGGINGFACE: "https://api-inference.huggingface.co/pipeline/feature-extraction",
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.MISTRAL: "https://api.mistral.ai/v1",
    ProviderKind.OPENROUTER: "https://openrouter.ai/api/v1",
    ProviderKind.OLLAMA: "http://localhost:11434",
}


class EmbeddingProvider(Protocol):
    """Anything that turns texts into vectors for a given model."""

    async def embed(self, texts: list[str], model_id: str) -> list[list[float]]: ...


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class _HTTPProvider:
    """Shared request, retry and error translation for HTTP providers."""

    kind: ProviderKind

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_wait: float = 1.0,
    ) -> None:
        """
        Initialize the provider.

        Args:
            api_key: Bearer token sent with every request (optional)
            base_url: Override the provider's default endpoint
            timeout: HTTP timeout in seconds
            max_retries: Attempts per call when rate limited or the server errors
            retry_wait: Initial backoff delay in seconds, doubled per attempt
        """
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URLS[self.kind]).rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_wait = retry_wait

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, url: str, payload: dict[str, Any]) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async for attempt in AsyncRetrying(
                    retry=retry_if_exception(_is_retryable),
                    stop=stop_after_attempt(self.max_retries),
                    wait=wait_exponential(multiplier=self.retry_wait, max=10),
                    reraise=True,
                ):
                    with attempt:
                        if attempt.retry_state.attempt_number > 1:
                            logger.warning(
                                f"Retrying {self.kind.value} embedding request "
                                f"(attempt {attempt.retry_state.attempt_number}/{self.max_retries})"
                            )
                        response = await client.post(url, json=payload, headers=self._headers())
                        response.raise_for_status()
                        return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderFailure(
                f"{self.kind.value} embedding request failed with HTTP {e.response.status_code}",
                provider=self.kind.value,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderFailure(
                f"{self.kind.value} embedding request failed: {e}",
                provider=self.kind.value,
            ) from e
        except ValueError as e:
            raise ProviderFailure(
                f"{self.kind.value} returned a malformed response: {e}",
                provider=self.kind.value,
            ) from e

    def _malformed(self, detail: str) -> ProviderFailure:
        return ProviderFailure(f"{self.kind.value} returned a malformed response: {detail}", provider=self.kind.value)


class HuggingFaceProvider(_HTTPProvider):
    """HuggingFace Inference API feature-extraction pipeline."""

    kind = ProviderKind.HUGGINGFACE

    async def embed(self, texts: list[str], model_id: str) -> list[list[float]]:
        if not texts:
            return []
        data = await self._post(f"{self.base_url}/{model_id}", {"inputs": texts})
        if not isinstance(data, list):
            raise self._malformed("expected a list of embeddings")
        return [self._pool(item) for item in data]

    def _pool(self, item: Any) -> list[float]:
        # Models without a pooling head return one vector per token
        if isinstance(item, list) and item and isinstance(item[0], list):
            width = len(item[0])
            return [sum(token[i] for token in item) / len(item) for i in range(width)]
        if not isinstance(item, list):
            raise self._malformed("expected a vector per input")
        return item


class OpenAICompatibleProvider(_HTTPProvider):
    """
    Any endpoint speaking the OpenAI embeddings wire format.

    Used for OpenAI itself, Mistral and OpenRouter; the kind only selects the
    default base URL.
    """

    def __init__(self, kind: ProviderKind = ProviderKind.OPENAI, **kwargs: Any) -> None:
        self.kind = kind
        super().__init__(**kwargs)

    async def embed(self, texts: list[str], model_id: str) -> list[list[float]]:
        if not texts:
            return []
        data = await self._post(f"{self.base_url}/embeddings", {"model": model_id, "input": texts})
        try:
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            return [item["embedding"] for item in items]
        except (KeyError, TypeError, AttributeError) as e:
            raise self._malformed(f"missing {e}") from e


class OllamaProvider(_HTTPProvider):
    """Local Ollama server."""

    kind = ProviderKind.OLLAMA

    async def embed(self, texts: list[str], model_id: str) -> list[list[float]]:
        if not texts:
            return []
        data = await self._post(f"{self.base_url}/api/embed", {"model": model_id, "input": texts})
        try:
            return data["embeddings"]
        except (KeyError, TypeError) as e:
            raise self._malformed("missing embeddings") from e


def create_provider(
    kind: Union[ProviderKind, str],
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: float = 30.0,
    max_retries: int = 3,
    retry_wait: float = 1.0,
) -> EmbeddingProvider:
    """
    Build the provider client for a provider kind.

    Raises:
        InvalidConfiguration: If the kind is not a known provider
    """
    try:
        kind = ProviderKind(kind)
    except ValueError:
        raise InvalidConfiguration(f"Unknown embedding provider: {kind}") from None

    options = {
        "api_key": api_key,
        "base_url": base_url,
        "timeout": timeout,
        "max_retries": max_retries,
        "retry_wait": retry_wait,
    }
    if kind is ProviderKind.HUGGINGFACE:
        return HuggingFaceProvider(**options)
    if kind is ProviderKind.OLLAMA:
        return OllamaProvider(**options)
    return OpenAICompatibleProvider(kind, **options)


def provider_from_settings(settings: "Settings") -> EmbeddingProvider:
    """Build the configured provider from application settings."""
    return create_provider(
        settings.embedding_provider,
        api_key=settings.embedding_api_key_value,
        base_url=settings.embedding_base_url,
        timeout=settings.embedding_timeout,
        max_retries=settings.embedding_max_retries,
    )
