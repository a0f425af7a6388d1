"""
Generation Routes
=================
Submit text-to-video, image-to-video and text-to-image requests, and
poll async job status.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError as PydanticValidationError

from ..config import get_settings
from ..dependencies import get_media_store, get_orchestrator
from ..limiter import limiter
from ..logging_config import get_logger
from ..responses import ValidationError
from ..schemas.generation import GenerateRequest, GenerationParams, GenerationResult, JobStatusResponse
from ..worker.generation import GenerationOrchestrator
from ..worker.media_store import MediaStore

logger = get_logger("generate")

router = APIRouter(prefix="/api/generate", tags=["generate"])


def generate_rate_limit() -> str:
    return get_settings().generate_rate_limit


def parse_parameters(raw: Optional[str]) -> GenerationParams:
    """Multipart requests carry parameters as a JSON string field."""
    if not raw:
        return GenerationParams()
    try:
        return GenerationParams.model_validate(json.loads(raw))
    except ValueError as e:
        details = None
        if isinstance(e, PydanticValidationError):
            details = {".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()}
        raise ValidationError("Invalid parameters", details) from e


@router.post("/text-to-video", response_model=GenerationResult, response_model_exclude_none=True)
@limiter.limit(generate_rate_limit)
async def text_to_video(
    request: Request,
    body: GenerateRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Start an async text-to-video job"""
    return await orchestrator.generate_text_to_video(body.prompt, body.parameters)


@router.post("/image-to-video", response_model=GenerationResult, response_model_exclude_none=True)
@limiter.limit(generate_rate_limit)
async def image_to_video(
    request: Request,
    file: Optional[UploadFile] = File(None),
    prompt: str = Form(""),
    parameters: Optional[str] = Form(None),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    store: MediaStore = Depends(get_media_store),
):
    """Start an async image-to-video job from an uploaded source image"""
    if file is None or not file.filename:
        raise ValidationError("Image file is required", {"file": "missing"})

    params = parse_parameters(parameters)
    orchestrator.prepare_prompt(prompt)

    store.validate_upload(file.content_type, 0)
    # Read at most one byte past the limit
    data = await file.read(store.max_file_size_bytes + 1)
    source_path = store.save_upload(data, file.filename, file.content_type)
    logger.info("upload_saved", path=str(source_path), size_bytes=len(data), mime_type=file.content_type)

    return await orchestrator.generate_image_to_video(
        data,
        prompt,
        params,
        image_mime_type=file.content_type,
        source_path=str(source_path),
    )


@router.post("/text-to-image", response_model=GenerationResult, response_model_exclude_none=True)
@limiter.limit(generate_rate_limit)
async def text_to_image(
    request: Request,
    body: GenerateRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Generate an image synchronously"""
    return await orchestrator.generate_text_to_image(body.prompt, body.parameters)


@router.get("/status/{job_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
async def job_status(job_id: str, orchestrator: GenerationOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_job_status(job_id)
