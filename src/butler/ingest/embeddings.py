"""LiteLLM embeddings for chunk text and search queries."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence

import litellm

from butler.errors import DimensionMismatch

logger = logging.getLogger(__name__)

# Any callable mapping texts to one vector (or None) per text can embed chunks.
Embedder = Callable[[Sequence[str]], list[list[float] | None]]

_PROVIDER_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
}

# Failures litellm raises once its own retries are exhausted.
PROVIDER_ERRORS: tuple[type[Exception], ...] = (
    litellm.exceptions.APIError,
    litellm.exceptions.APIConnectionError,
    litellm.exceptions.AuthenticationError,
    litellm.exceptions.BadRequestError,
    litellm.exceptions.RateLimitError,
    litellm.exceptions.ServiceUnavailableError,
    litellm.exceptions.Timeout,
)


class LiteLLMEmbedder:
    """Embed text in batches through ``litellm.embedding()``.

    Args:
        model: LiteLLM model string, e.g. ``openai/text-embedding-3-small``.
        dimensions: Expected vector length; every returned vector is checked.
        batch_size: Texts per embedding request.
        num_retries: LiteLLM retries (exponential backoff) on transient errors.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        batch_size: int = 100,
        num_retries: int = 3,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.num_retries = num_retries

    def __call__(self, texts: Sequence[str]) -> list[list[float] | None]:
        return self.embed(texts)

    def embed(self, texts: Sequence[str]) -> list[list[float] | None]:
        """Return one vector per text, in input order.

        Raises:
            RuntimeError: No API key is configured for the model's provider.
            DimensionMismatch: The model returned vectors of the wrong length.
            PROVIDER_ERRORS: The provider call failed after retries.
        """
        if not texts:
            return []
        self.check_api_key()

        vectors: list[list[float] | None] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            logger.debug("Embedding %d texts with %s", len(batch), self.model)
            response = litellm.embedding(model=self.model, input=batch, num_retries=self.num_retries)
            for item in response.data:
                vector = list(item["embedding"])
                if len(vector) != self.dimensions:
                    raise DimensionMismatch(
                        f"{self.model} returned {len(vector)}-dimensional vectors, "
                        f"expected {self.dimensions}",
                        expected=self.dimensions,
                        actual=len(vector),
                    )
                vectors.append(vector)
        return vectors

    def embed_query(self, text: str) -> list[float]:
        """Embed a single search query."""
        return self.embed([text])[0]

    def check_api_key(self) -> None:
        """Raise RuntimeError if no API key is available for the embedding model."""
        provider = self.model.split("/")[0].lower() if "/" in self.model else ""
        required_env = _PROVIDER_KEYS.get(provider)
        if required_env and not os.environ.get(required_env):
            raise RuntimeError(
                f"No API key found for provider '{provider}'. "
                f"Set the {required_env} environment variable."
            )
