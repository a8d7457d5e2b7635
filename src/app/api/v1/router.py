"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.app.api.v1 import articles, auth, chat, health, help, knowledge, superadmin, tickets

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(knowledge.router)
router.include_router(articles.router)
router.include_router(help.router)
router.include_router(chat.router)
router.include_router(tickets.router)
router.include_router(superadmin.router)
