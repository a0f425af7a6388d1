from .generation import (
    EnhancePromptRequest,
    GenerateRequest,
    GenerationParams,
    GenerationResult,
    JobStatusResponse,
)

__all__ = [
    "EnhancePromptRequest",
    "GenerateRequest",
    "GenerationParams",
    "GenerationResult",
    "JobStatusResponse",
]
