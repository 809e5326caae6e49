"""
Answer Extraction Module.

Reads marked answers from answer sheet images through a vision LLM:
- Image loading (photos and scanned PDFs)
- Prompt construction
- API client with retries
- Response parsing and token normalization
"""

from provafacil.extraction.extractor import AnswerExtractor
from provafacil.extraction.image_loader import ImageLoadError, load_image, payload_from_data_uri
from provafacil.extraction.llm_client import LLMError, VisionClient
from provafacil.extraction.parser import ExtractionError, ExtractionParser, normalize_token
from provafacil.extraction.prompt_builder import PromptBuilder

__all__ = [
    "AnswerExtractor",
    "ExtractionError",
    "ExtractionParser",
    "ImageLoadError",
    "LLMError",
    "PromptBuilder",
    "VisionClient",
    "load_image",
    "normalize_token",
    "payload_from_data_uri",
]
