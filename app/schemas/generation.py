from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional

GenerationType = Literal["text-to-video", "image-to-video", "text-to-image"]
GenerationStatus = Literal["processing", "completed", "failed"]


class GenerationParams(BaseModel):
    # Video parameters
    duration: Optional[int] = Field(default=None, ge=1, le=120)
    aspectRatio: Optional[str] = None

    # Image parameters
    width: Optional[int] = Field(default=None, ge=256, le=4096)
    height: Optional[int] = Field(default=None, ge=256, le=4096)
    cfgScale: Optional[float] = Field(default=None, ge=1.0, le=10.0)

    quality: Optional[Literal["standard", "high"]] = None


class GenerateRequest(BaseModel):
    prompt: str
    parameters: Optional[GenerationParams] = None


class GenerationResult(BaseModel):
    jobId: str
    status: GenerationStatus
    mediaUrl: Optional[str] = None
    mediaType: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class JobStatusResponse(BaseModel):
    jobId: str
    status: GenerationStatus
    progress: Optional[int] = None
    mediaUrl: Optional[str] = None
    mediaType: Optional[str] = None
    error: Optional[str] = None


class EnhancePromptRequest(BaseModel):
    prompt: str
    style: Literal["photorealistic", "cinematic", "artistic", "none"] = "photorealistic"
    quality: Literal["standard", "high"] = "high"
    mediaType: Literal["image", "video"] = "image"
