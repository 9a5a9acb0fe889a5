import logging
import secrets
from contextlib import asynccontextmanager
from json import JSONDecodeError

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

import config
from bot_instance import close_bot
from db import create_db_and_tables
from redis_instance import close_redis
from services.push import PushSender


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    await create_db_and_tables()
    logging.info("[Startup] Database ready")

    yield

    logging.warning('Shutting down..')
    await close_bot()
    await close_redis()
    logging.warning('Bye!')


app = FastAPI(lifespan=lifespan)


# Health check endpoint (for Docker container monitoring)
@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.post("/functions/push-order-update")
async def push_order_update(request: Request):
    """
    Send a push notification to every endpoint of one user.

    Body: {"user_id": int, "title"?: str, "body"?: str, "url"?: str}
    Response: {"sent": int, "results": [{"endpoint", "ok", "error"}]}
    """
    if config.PUSH_FUNCTION_SECRET:
        secret = request.headers.get("X-Function-Secret")
        if secret is None or not secrets.compare_digest(secret, config.PUSH_FUNCTION_SECRET):
            logging.warning("Push function request rejected: invalid X-Function-Secret header")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        payload = await request.json()
    except JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(payload, dict) or not payload.get("user_id"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id is required")
    try:
        user_id = int(payload["user_id"])
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id must be an integer")

    result = await PushSender.send_to_user(
        user_id,
        title=payload.get("title"),
        body=payload.get("body"),
        url=payload.get("url")
    )
    return result.model_dump()


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logging.error(f"Database error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"message": "Database unavailable"},
    )
