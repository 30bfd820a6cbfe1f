from __future__ import annotations

import os
from typing import Optional

import numpy as np
import openai

from screen_locator.errors import ConfigurationError

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAIEmbedder:
    """Callable text embedder for ``InMemoryElementStore``."""

    def __init__(self, *, model: str = DEFAULT_EMBEDDING_MODEL, api_key: Optional[str] = None, client=None):
        if client is None:
            key = api_key or os.environ.get("OPENAI_API_KEY")
            if not key:
                raise ConfigurationError("OPENAI_API_KEY is not set", "api_key")
            client = openai.OpenAI(api_key=key)
        self.client = client
        self.model = model

    def __call__(self, text: str) -> np.ndarray:
        response = self.client.embeddings.create(model=self.model, input=str(text or " "))
        return np.asarray(response.data[0].embedding, dtype=np.float32)
