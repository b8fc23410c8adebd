import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from api.admin import router as admin_router
from api.categories import router as categories_router
from api.health import router as health_router
from api.meetings import router as meetings_router
from api.results import router as results_router
from api.votes import router as votes_router
from config import settings
from core.database import engine
from core.exceptions import ClubVoteError
from models import Base

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s ready: database=%s", settings.APP_NAME, engine.url.get_backend_name())

    yield
    await engine.dispose()


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["X-Gateway-Secret", "X-User-Id", "X-Voter-Fingerprint", "Content-Type"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response


app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(ClubVoteError)
async def club_vote_error_handler(request: Request, exc: ClubVoteError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Missing auth headers keep FastAPI's 422; body problems are plain 400s
    errors = exc.errors()
    status = 422 if any(e.get("loc", ("",))[0] == "header" for e in errors) else 400
    message = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ())[1:]) or 'request'}: {e.get('msg')}"
        for e in errors
    )
    return JSONResponse(status_code=status, content={"error": message})


app.include_router(health_router)
app.include_router(meetings_router)
app.include_router(categories_router)
app.include_router(votes_router)
app.include_router(results_router)
app.include_router(admin_router)
