"""
Embeddings client for custom collection records.

Records are embedded from the text of their collection's embedding fields so
that they can be searched semantically later.

- Model: text-embedding-3-small (1536 dims) unless overridden by EMBEDDING_MODEL
- Batching: EMBEDDING_BATCH_SIZE texts per API call

Feature Flag:
    Embeddings are enabled when OPENAI_API_KEY is set. Without it every
    function here is a no-op that returns None per input text.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from .core.config import get_settings
from .core.errors import ExternalServiceError

logger = logging.getLogger(__name__)
settings = get_settings()


def embeddings_enabled() -> bool:
    return bool(settings.openai_api_key.strip())


async def embed_texts(texts: list[str]) -> list[Optional[list[float]]]:
    """
    Generate embeddings for a list of texts.

    Returns one entry per input text, in input order. Empty texts get None,
    and so does every text when embeddings are disabled.

    Raises:
        ExternalServiceError: the OpenAI API call failed
    """
    results: list[Optional[list[float]]] = [None] * len(texts)
    if not embeddings_enabled():
        logger.debug("Embeddings disabled, skipping embed_texts")
        return results

    # Only non-empty texts are sent; remember where each one came from
    pending = [(idx, text) for idx, text in enumerate(texts) if text and text.strip()]
    if not pending:
        return results

    client = AsyncOpenAI(api_key=settings.openai_api_key)
    batch_size = max(1, settings.embedding_batch_size)

    for i in range(0, len(pending), batch_size):
        batch = pending[i:i + batch_size]
        try:
            response = await client.embeddings.create(
                model=settings.embedding_model,
                input=[text for _, text in batch],
                dimensions=settings.embedding_dimensions,
            )
        except OpenAIError as e:
            logger.error(f"Embedding request failed: {e}")
            raise ExternalServiceError(f"Embedding request failed: {e}") from e

        # Sort by index to maintain order (API may return out of order)
        for item in sorted(response.data, key=lambda x: x.index):
            original_idx, _ = batch[item.index]
            results[original_idx] = item.embedding

    return results


async def embed_single(text: str) -> Optional[list[float]]:
    """Embed one text. Convenience wrapper around embed_texts."""
    embeddings = await embed_texts([text])
    return embeddings[0]
