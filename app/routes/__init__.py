from .generate import router as generate_router
from .history import router as history_router
from .media import router as media_router
from .prompt import router as prompt_router
from .health import router as health_router

__all__ = [
    "generate_router",
    "history_router",
    "media_router",
    "prompt_router",
    "health_router",
]
