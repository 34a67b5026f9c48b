"""Shared utilities for processing flows.

- Generative backend contract and PydanticAI adapter
- Model factory, quality-tier and credit-cost resolution
- JSON object extraction from free-form backend text
"""

from socialpulse.processing.common.json_extract import extract_json_object, load_json_object
from socialpulse.processing.common.llm import (
    GenerationRequest,
    GenerationResult,
    GenerativeBackend,
    PydanticAIBackend,
    create_model,
    model_credit_cost,
    resolve_quality,
)

__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "GenerativeBackend",
    "PydanticAIBackend",
    "create_model",
    "extract_json_object",
    "load_json_object",
    "model_credit_cost",
    "resolve_quality",
]
