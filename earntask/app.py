import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .responses import error
from .routes import admin, admin_tasks, auth, creator, follow, posts, referrals, stories, tasks, wallet
from .rules import RuleError

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Earn Task Platform API")

# CORS settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)


def validation_message(exc: RequestValidationError):
    """First validation error as a single readable sentence."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"

    first = errors[0]
    message = first.get("msg", "Invalid request")
    if message.startswith("Value error, "):
        return message[len("Value error, "):]

    field = first.get("loc", [])[-1] if first.get("loc") else None
    if field is not None and field != "body":
        return f"{field}: {message}"
    return message


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = "Route not found"
    return JSONResponse(status_code=exc.status_code, content=error(detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error(validation_message(exc)))


@app.exception_handler(RuleError)
async def rule_error_handler(request: Request, exc: RuleError):
    return JSONResponse(status_code=400, content=error(str(exc)))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=error("Internal server error"))


# Admin task routes first so /api/admin/tasks is never shadowed
app.include_router(admin_tasks.router)
app.include_router(admin.router)
app.include_router(auth.router)
app.include_router(tasks.router)
app.include_router(wallet.router)
app.include_router(referrals.router)
app.include_router(posts.router)
app.include_router(follow.router)
app.include_router(stories.router)
app.include_router(creator.router)

app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/api/health")
def health_check():
    return {"status": "ok", "message": "Earn Task Platform API is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
