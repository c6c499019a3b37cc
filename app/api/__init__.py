"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import admin, chat

router = APIRouter()

# Visitor chat and feedback
router.include_router(chat.router)

# Operator tools (X-API-Key)
router.include_router(admin.router)
