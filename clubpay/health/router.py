from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from clubpay.health.service import health_club_api_info
from clubpay.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root(request: Request):
    registry = getattr(request.app.state, "draft_registry", None)
    return {
        "ok": True,
        "drafts": len(registry) if registry is not None else 0,
        "rate_limit": rate_limit_health_info(request),
    }

@router.get("/club-api")
async def health_club_api():
    return JSONResponse(await health_club_api_info())
