"""
Prompt Utilities
================
Validation, approximate token counting and keyword enhancement for
user prompts before they are sent to the provider.

The token count is a rough proxy (words + punctuation), not a real
tokenizer.
"""

import re
from typing import List

from ..logging_config import get_logger
from ..responses import ValidationError

logger = get_logger("prompts")

MIN_PROMPT_CHARS = 3
MAX_PROMPT_CHARS = 500
DETAILED_PROMPT_CHARS = 200

INAPPROPRIATE_WORDS = ["nsfw", "nude", "explicit", "violence", "gore"]

PUNCTUATION_RE = re.compile(r"[.,!?;:()\[\]{}'\"]")
WHITESPACE_RE = re.compile(r"\s+")

STYLE_KEYWORDS = {
    "photorealistic": [
        "photorealistic",
        "highly detailed",
        "professional photography",
        "8k resolution",
        "sharp focus",
        "realistic lighting",
        "natural colors",
    ],
    "cinematic": [
        "cinematic",
        "film quality",
        "dramatic lighting",
        "depth of field",
        "professional color grading",
        "high production value",
    ],
    "artistic": [
        "artistic",
        "creative composition",
        "vibrant colors",
        "professional quality",
    ],
    "none": [],
}

HIGH_QUALITY_KEYWORDS = ["high quality", "masterpiece", "best quality"]
VIDEO_KEYWORDS = ["smooth motion", "stable camera", "professional video quality"]

NEGATIVE_KEYWORDS = [
    "blurry", "low quality", "distorted", "deformed", "ugly", "bad anatomy",
    "watermark", "text", "signature", "cartoon", "anime", "illustration",
    "painting", "drawing", "art", "unrealistic", "artificial",
]


def validate_and_clean_prompt(prompt: str) -> str:
    """Collapse whitespace and reject prompts that are too short, too long or inappropriate."""
    if len(prompt) > MAX_PROMPT_CHARS:
        raise ValidationError(
            f"Prompt is too long. Please keep it under {MAX_PROMPT_CHARS} characters.",
            {"prompt": "too_long"},
        )

    cleaned = WHITESPACE_RE.sub(" ", prompt.strip())

    if len(cleaned) < MIN_PROMPT_CHARS:
        raise ValidationError(
            "Prompt is too short. Please provide more details.",
            {"prompt": "too_short"},
        )

    lowered = cleaned.lower()
    for word in INAPPROPRIATE_WORDS:
        if word in lowered:
            raise ValidationError(
                "Prompt contains inappropriate content.",
                {"prompt": "inappropriate"},
            )

    return cleaned


def count_tokens(text: str) -> int:
    normalized = WHITESPACE_RE.sub(" ", text.strip())
    words = normalized.split(" ") if normalized else []
    punctuation = len(PUNCTUATION_RE.findall(normalized))
    return len(words) + punctuation


def validate_prompt_tokens(prompt: str, max_tokens: int) -> int:
    """Return the approximate token count, raising if it exceeds max_tokens."""
    token_count = count_tokens(prompt)
    if token_count > max_tokens:
        raise ValidationError(
            f"Prompt exceeds maximum token limit of {max_tokens}. Current: {token_count} tokens",
            {"prompt": "too_many_tokens", "tokens": token_count, "max_tokens": max_tokens},
        )
    return token_count


def enhance_prompt(
    prompt: str,
    style: str = "photorealistic",
    quality: str = "high",
    media_kind: str = "image",
) -> str:
    """Append style, quality and media keywords to a prompt.

    Prompts longer than 200 characters are considered detailed already and
    are returned unchanged.
    """
    if len(prompt) > DETAILED_PROMPT_CHARS:
        return prompt

    clean_prompt = prompt.strip()

    enhancements: List[str] = list(STYLE_KEYWORDS.get(style, []))
    if quality == "high":
        enhancements.extend(HIGH_QUALITY_KEYWORDS)
    if media_kind == "video":
        enhancements.extend(VIDEO_KEYWORDS)

    if not enhancements:
        return clean_prompt

    enhanced = f"{clean_prompt}, {', '.join(enhancements)}"
    logger.debug("prompt_enhanced", style=style, quality=quality, media_kind=media_kind)
    return enhanced


def get_negative_prompt() -> str:
    return ", ".join(NEGATIVE_KEYWORDS)


def get_prompt_suggestions(prompt: str) -> List[str]:
    """Suggestions for details the prompt does not mention yet."""
    lowered = prompt.lower()
    suggestions = []

    if "lighting" not in lowered:
        suggestions.append('Add lighting details (e.g., "golden hour lighting", "soft natural light")')

    if "background" not in lowered:
        suggestions.append("Describe the background or setting")

    if "camera" not in lowered and "angle" not in lowered:
        suggestions.append('Specify camera angle (e.g., "wide angle shot", "close-up")')

    if "color" not in lowered:
        suggestions.append("Mention color palette or mood")

    return suggestions
