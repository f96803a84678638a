from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

router = APIRouter(tags=["monitoring"])


@router.get("/health")
def health_view(request: Request):
    db_ok = False
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        db_ok = False

    scheduler = getattr(request.app.state, "scheduler", None)
    ok = db_ok
    code = 200 if ok else 503
    return JSONResponse(
        {
            "ok": ok,
            "components": {
                "db": {"ok": db_ok},
                "scheduler": {"running": bool(scheduler and scheduler.running)},
            },
        },
        status_code=code,
    )
