from fastapi import APIRouter, Request

router = APIRouter(tags=["Monitoring"])


@router.get("/")
async def root():
    return {"message": "Data Pusher API Running..."}


@router.options("/health")
async def health_options():
    """Allow basic OPTIONS checks from load balancers and proxies."""
    return {"status": "ok"}


@router.get("/health")
async def health_check(request: Request):
    """Liveness probe; reports the last database probe outcome without touching the database."""
    return {
        "status": "ok",
        "db": getattr(request.app.state, "db_status", "unknown"),
    }
