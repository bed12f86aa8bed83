"""FastAPI route receiving Telegram webhook updates."""

from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException, Request

from controllers.webhook_controller import receive_update

router = APIRouter(prefix="/telegram")


@router.post("/webhook/{secret}")
async def telegram_webhook_route(request: Request, secret: str, payload: Dict[str, Any] = Body(...)):
	try:
		return await receive_update(request, secret, payload)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
