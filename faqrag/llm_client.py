"""Ollama client and the embedding / generation gateways built on it.

The gateways are the only places the retrieval core talks to a model
provider. Transient provider failures are retried here, never in the core.
"""
import httpx
from typing import Any, Dict, List, Optional, Protocol
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from faqrag.errors import EmbeddingFailed, GenerationFailed

logger = structlog.get_logger()


class EmbeddingGateway(Protocol):
    """Maps text to a fixed-length vector."""

    async def embed(self, text: str) -> List[float]:
        ...


class GenerativeGateway(Protocol):
    """Maps a prompt to generated text."""

    async def generate(self, prompt: str) -> str:
        ...


def _is_retryable(exc: BaseException) -> bool:
    """Retry connection problems and 5xx responses; 4xx are final."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_initial_wait: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL
            timeout: Request timeout in seconds
            max_retries: Retries after the first attempt for transient errors
            retry_initial_wait: First backoff delay in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_initial_wait = retry_initial_wait
        self.transport = transport

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential_jitter(
                initial=self.retry_initial_wait,
                max=30,
                jitter=self.retry_initial_wait,
            ),
            before_sleep=lambda retry_state: logger.warning(
                "ollama_request_retry",
                attempt=retry_state.attempt_number,
                max_attempts=self.max_retries + 1,
                error=str(retry_state.outcome.exception()),
            ),
            reraise=True,
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async for attempt in self._retrying():
            with attempt:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self.transport
                ) as client:
                    response = await client.post(f"{self.base_url}{path}", json=payload)
                    response.raise_for_status()
                    return response.json()

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send a non-streaming chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            httpx.HTTPError: On API errors once retries are exhausted
        """
        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
        }

        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        logger.info(
            "ollama_chat_request",
            model=model,
            message_count=len(messages),
        )

        try:
            data = await self._post("/api/chat", payload)
        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "ollama_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

        logger.info(
            "ollama_chat_response",
            model=model,
            response_length=len((data.get("message") or {}).get("content") or ""),
        )

        return data

    async def embeddings(self, prompt: str, model: str) -> Dict:
        """Generate embeddings for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use

        Returns:
            Response dict with 'embedding' list

        Raises:
            httpx.HTTPError: On API errors once retries are exhausted
        """
        payload = {
            "model": model,
            "prompt": prompt,
        }

        logger.debug(
            "ollama_embedding_request",
            model=model,
            prompt_length=len(prompt),
        )

        try:
            data = await self._post("/api/embeddings", payload)
        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise

        logger.debug(
            "ollama_embedding_response",
            model=model,
            dimension=len(data.get("embedding") or []),
        )

        return data


class OllamaEmbedder:
    """Embedding gateway backed by an Ollama embedding model."""

    def __init__(self, client: OllamaClient, model: str):
        self.client = client
        self.model = model

    async def embed(self, text: str) -> List[float]:
        """Embed text.

        Raises:
            EmbeddingFailed: On provider errors or an empty embedding
        """
        try:
            response = await self.client.embeddings(prompt=text, model=self.model)
        except (httpx.HTTPError, ValueError) as e:
            raise EmbeddingFailed(
                f"Failed to generate embedding: {e}",
                operation="embed",
                identifier=self.model,
            ) from e

        embedding = response.get("embedding") if isinstance(response, dict) else None
        if not embedding:
            raise EmbeddingFailed(
                "Empty embedding returned",
                operation="embed",
                identifier=self.model,
            )
        return [float(x) for x in embedding]


class OllamaGenerator:
    """Generative gateway backed by an Ollama chat model."""

    def __init__(
        self,
        client: OllamaClient,
        model: str,
        temperature: Optional[float] = None,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature

    async def generate(self, prompt: str) -> str:
        """Generate a completion for a single-turn prompt.

        Raises:
            GenerationFailed: On provider errors or a malformed response
        """
        try:
            response = await self.client.chat(
                messages=[{"role": "user", "content": prompt}],
                model=self.model,
                temperature=self.temperature,
            )
        except (httpx.HTTPError, ValueError) as e:
            raise GenerationFailed(
                f"Generation request failed: {e}",
                operation="generate",
                identifier=self.model,
            ) from e

        message = response.get("message") if isinstance(response, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise GenerationFailed(
                "Malformed chat response: missing message content",
                operation="generate",
                identifier=self.model,
            )
        return content
