"""
Byte-range playback proxy for Drive media.
"""
import logging
from fastapi import APIRouter, Depends, Request
from starlette.responses import Response, StreamingResponse

from api.routes.addon import get_addon
from services.addon import AddonService
from services.drive import open_media

logger = logging.getLogger(__name__)
router = APIRouter(tags=["playback"])

# Hop-by-hop headers are not forwarded to the client
_SKIP_HEADERS = {"transfer-encoding", "connection", "keep-alive", "content-encoding"}


@router.get("/playback/{file_id}")
async def playback(file_id: str, request: Request, addon: AddonService = Depends(get_addon)):
    """
    Stream a Drive file to the player, forwarding the Range header so
    seeking works.
    """
    range_header = request.headers.get("range")
    r = await open_media(addon.client, file_id, range_header)

    if not r.is_success:
        body = await r.aread()
        await r.aclose()
        logger.warning(f"Playback of {file_id} failed with HTTP {r.status_code}")
        return Response(content=body, status_code=r.status_code, media_type=r.headers.get("content-type"))

    response_headers = {k: v for k, v in r.headers.items() if k.lower() not in _SKIP_HEADERS}
    if "content-encoding" in r.headers:
        # aiter_bytes decodes, so the upstream length no longer applies
        response_headers = {k: v for k, v in response_headers.items() if k.lower() != "content-length"}

    async def stream_only():
        try:
            async for chunk in r.aiter_bytes():
                yield chunk
        finally:
            await r.aclose()

    return StreamingResponse(stream_only(), status_code=r.status_code, headers=response_headers)
