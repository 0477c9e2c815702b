import logging
from typing import Optional

import torch
from sentence_transformers import SentenceTransformer
from supabase import Client, create_client

from .config import AppConfig
from .exceptions import ConfigurationError, ModelLoadingError

logger = logging.getLogger(__name__)


def create_supabase_client(config: AppConfig) -> Optional[Client]:
    """
    Creates a Supabase client from the configured URL and key, or returns
    None when credentials are not configured.

    Raises:
        ConfigurationError: if credentials are present but the client cannot be created.
    """
    if not config.supabase_url or not config.supabase_key:
        logger.warning("Supabase credentials missing, database features are unavailable")
        return None
    try:
        client = create_client(config.supabase_url, config.supabase_key)
    except Exception as e:
        raise ConfigurationError(f"Failed to create Supabase client: {e}") from e
    logger.info("Supabase client initialized.")
    return client


class ResourceManager:
    """
    A context manager that owns the embedding model for the length of a run.
    """
    def __init__(self, config: AppConfig, supabase_client: Optional[Client] = None):
        self.config = config
        self.supabase_client = supabase_client
        self.embedding_model = None
        self.device = 'cuda' if torch.cuda.is_available() else 'cpu'
        if torch.backends.mps.is_available():
            self.device = 'mps'

    def __enter__(self):
        self._load_embedding_model()
        return {
            "embedding_model": self.embedding_model,
            "supabase": self.supabase_client,
        }

    def _load_embedding_model(self):
        logger.info(f"Loading embedding model '{self.config.model_name}' on {self.device}...")
        try:
            self.embedding_model = SentenceTransformer(self.config.model_name, device=self.device)
        except Exception as e:
            raise ModelLoadingError(f"Failed to load SentenceTransformer model '{self.config.model_name}': {e}") from e

        dimension = self.embedding_model.get_sentence_embedding_dimension()
        if dimension != self.config.ranking.embedding_dimension:
            logger.warning(
                f"Model '{self.config.model_name}' produces {dimension}-dimensional vectors, "
                f"configured index dimension is {self.config.ranking.embedding_dimension}"
            )

    def __exit__(self, exc_type, exc_val, exc_tb):
        logger.info("Releasing resources...")
        if self.embedding_model is not None:
            if hasattr(self.embedding_model, 'cpu'):
                self.embedding_model.cpu()
            del self.embedding_model
            self.embedding_model = None

        if torch.cuda.is_available():
            torch.cuda.empty_cache()
            logger.info("CUDA cache cleared.")
