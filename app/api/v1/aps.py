from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.errors import UpstreamError
from app.core.providers.base import BaseTranslationClient
from app.dependencies import get_translation_client
from app.schemas.file import ViewerTokenResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/token", response_model=ViewerTokenResponse)
async def viewer_token(
    client: BaseTranslationClient = Depends(get_translation_client),
) -> ViewerTokenResponse:
    """Short-lived APS token for the browser viewer."""
    try:
        token, expires_in = await client.viewer_token()
    except UpstreamError as exc:
        logger.warning("aps.token.failed", extra={"error": str(exc)})
        raise HTTPException(status_code=502, detail="Failed to get APS token") from exc
    return ViewerTokenResponse(access_token=token, expires_in=expires_in)
