"""
Request-scoped accessors for the services built by create_app.
"""
from fastapi import Request

from .worker.generation import GenerationOrchestrator
from .worker.media_store import MediaStore


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_media_store(request: Request) -> MediaStore:
    return request.app.state.media_store
