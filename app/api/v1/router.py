from __future__ import annotations

from fastapi import APIRouter

from app.api.v1 import aps, files

router = APIRouter()
router.include_router(files.router, prefix="/files", tags=["files"])
router.include_router(aps.router, prefix="/aps", tags=["aps"])
