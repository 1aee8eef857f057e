import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import configure_logging
from app.core.database import Base, engine
from app.api import auth, borrowing, routes

logger = configure_logging()

Base.metadata.create_all(bind=engine)
app = FastAPI(title="Library Borrowing Service")
app.include_router(auth.router)
app.include_router(routes.router)
app.include_router(borrowing.router)


@app.exception_handler(SQLAlchemyError)
async def persistence_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}
