"""Embedding generation via an Ollama-compatible HTTP provider"""

import logging

import httpx

from src.config import AppConfig

logger = logging.getLogger(__name__)


class Embedder:
    """Generate embeddings with a single request to the provider per text"""

    def __init__(self, config: AppConfig, client: httpx.AsyncClient | None = None):
        """
        Initialize embedder

        Args:
            config: Application configuration (provider URL, model, timeout)
            client: Optional HTTP client; one is created (and owned) if omitted
        """
        self.config = config
        self.model_name = config.embedding_model
        self.endpoint = f"{config.ollama_base_url.rstrip('/')}/api/embeddings"
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.embedding_timeout_seconds),
        )

    async def generate(self, text: str | None) -> list[float] | None:
        """
        Generate an embedding for a single text

        Texts shorter than ``min_text_length`` once trimmed are not sent.
        Exactly one attempt is made; any failure is logged and reported as
        None, never raised.

        Args:
            text: Text to embed

        Returns:
            list[float] | None: Embedding vector, or None if unavailable
        """
        if not text or len(text.strip()) < self.config.min_text_length:
            logger.debug("Text too short for embedding")
            return None

        try:
            response = await self.client.post(
                self.endpoint,
                json={"model": self.model_name, "prompt": text},
                timeout=self.config.embedding_timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.warning(
                f"Embedding request timed out after {self.config.embedding_timeout_seconds}s"
            )
            return None
        except httpx.HTTPStatusError as e:
            logger.warning(f"Embedding provider error: {e.response.status_code}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Embedding generation failed: {e}")
            return None

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, list) or not embedding:
            logger.warning("No embedding returned from provider")
            return None
        if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in embedding):
            logger.warning("Provider returned a non-numeric embedding")
            return None

        logger.debug(f"Embedding generated (dimension: {len(embedding)})")
        return [float(x) for x in embedding]

    async def close(self) -> None:
        """Close the HTTP client if this embedder created it"""
        if self._owns_client:
            await self.client.aclose()
