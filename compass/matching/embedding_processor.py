import logging
from typing import List

import torch
from sentence_transformers import SentenceTransformer
from cachetools import LRUCache

from ..exceptions import EmbeddingError

logger = logging.getLogger(__name__)


class BatchEmbeddingProcessor:
    """
    Encodes texts in batches, keeping recently encoded texts in an LRU cache.
    """
    def __init__(self, embedding_model: SentenceTransformer, batch_size: int = 32, cache_size: int = 1000):
        if not isinstance(embedding_model, SentenceTransformer):
            raise TypeError("embedding_model must be an instance of SentenceTransformer")

        self.embedding_model = embedding_model
        self.batch_size = batch_size
        self.cache = LRUCache(maxsize=cache_size)

    @property
    def dimension(self) -> int:
        return self.embedding_model.get_sentence_embedding_dimension()

    def encode_texts(self, texts: List[str]) -> torch.Tensor:
        """
        Encodes `texts` and returns a (len(texts), D) tensor in input order.

        Raises:
            EmbeddingError: if the model fails on the uncached part of the batch.
        """
        if not texts:
            return torch.empty(0)

        encoded = {}
        pending = []
        for i, text in enumerate(texts):
            if text in self.cache:
                encoded[i] = self.cache[text]
            else:
                pending.append((i, text))

        logger.info(f"Embedding {len(texts)} texts: {len(encoded)} from cache, {len(pending)} to encode.")

        if pending:
            try:
                new_embeddings = self.embedding_model.encode(
                    [text for _, text in pending],
                    batch_size=self.batch_size,
                    convert_to_tensor=True,
                    normalize_embeddings=True,
                    show_progress_bar=False,
                )
            except Exception as e:
                logger.error(f"Failed to encode batch of {len(pending)} texts: {e}", exc_info=True)
                raise EmbeddingError(f"Embedding model failed on a batch of {len(pending)} texts: {e}") from e

            for (index, text), embedding in zip(pending, new_embeddings):
                embedding = embedding.detach().cpu()
                self.cache[text] = embedding
                encoded[index] = embedding

        return torch.stack([encoded[i] for i in range(len(texts))])

    def encode_to_lists(self, texts: List[str]) -> List[List[float]]:
        """Same as encode_texts but as plain float lists, ready for JSON or pgvector."""
        if not texts:
            return []
        return self.encode_texts(texts).tolist()
