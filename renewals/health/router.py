from fastapi import APIRouter, Request
from renewals import __version__
from renewals.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root(request: Request):
    return {"ok": True, "version": __version__, "rate_limit": rate_limit_health_info(request)}
