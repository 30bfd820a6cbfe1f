"""
OpenAI adapters for the grounding, validation, page-description and
embedding collaborators.
"""

from screen_locator.models.embeddings import OpenAIEmbedder
from screen_locator.models.openai_vision import (
    OpenAIGroundingModel,
    OpenAIPageDescriber,
    OpenAIValidationModel,
)

__all__ = [
    "OpenAIEmbedder",
    "OpenAIGroundingModel",
    "OpenAIPageDescriber",
    "OpenAIValidationModel",
]
