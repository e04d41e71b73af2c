"""API module."""

from fastapi import APIRouter

from .endpoints import chat, core, memory, search

router = APIRouter()

# Include endpoint routers
router.include_router(memory.router, prefix="/memories", tags=["memories"])
router.include_router(search.router, prefix="/search", tags=["search"])
router.include_router(chat.router, prefix="/chat", tags=["chat"])
router.include_router(core.router, tags=["core"])
