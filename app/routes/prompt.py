"""
Prompt helper routes.
"""
from fastapi import APIRouter

from ..schemas.generation import EnhancePromptRequest
from ..worker.prompts import enhance_prompt, get_negative_prompt, get_prompt_suggestions, validate_and_clean_prompt

router = APIRouter(prefix="/api/prompt", tags=["prompt"])


@router.post("/enhance")
def enhance(body: EnhancePromptRequest):
    """Preview the enhanced prompt that would be sent to the model."""
    cleaned = validate_and_clean_prompt(body.prompt)
    return {
        "original": body.prompt,
        "enhanced": enhance_prompt(cleaned, style=body.style, quality=body.quality, media_kind=body.mediaType),
        "suggestions": get_prompt_suggestions(cleaned),
        "negativePrompt": get_negative_prompt(),
    }
