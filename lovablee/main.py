# lovablee/main.py
import json
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.cors import CORSMiddleware

from lovablee.config import Settings, get_settings
from lovablee.database import create_db_and_tables, get_engine, get_session
from lovablee.errors import AuthenticationError, ConfigurationError, NetworkError
from lovablee.logging_config import setup_logging
from lovablee.schemas import PushRequest
from lovablee.services.auth_service import SupabaseAuth, bearer_token
from lovablee.services.push_service import dispatch_push, fetch_device_tokens

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]
CORS_HEADERS = {"Access-Control-Allow-Origin": "*", "Access-Control-Allow-Headers": "*"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Starting up and creating database tables...")
    await create_db_and_tables(get_engine(settings.database_url))
    app.state.http_client = httpx.AsyncClient(http2=True)
    logger.info("Startup complete.")
    yield
    await app.state.http_client.aclose()


app = FastAPI(title="lovablee functions", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"],
)


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def _json(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(content, status_code=status_code, headers=CORS_HEADERS)


# --- send-push ---
@app.api_route("/send-push", methods=ALL_METHODS)
async def send_push(
    request: Request,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    session: AsyncSession = Depends(get_session),
):
    if request.method != "POST":
        return PlainTextResponse("Method Not Allowed", status_code=405)
    try:
        push = PushRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        return PlainTextResponse("Invalid JSON body", status_code=400)

    if not push.targetUserId or not push.title or not push.body:
        return PlainTextResponse("Missing targetUserId/title/body", status_code=400)
    if not settings.has_apns:
        return PlainTextResponse("APNs environment variables are not configured.", status_code=500)

    try:
        tokens = await fetch_device_tokens(session, push.targetUserId)
    except SQLAlchemyError as e:
        logger.error("Device token lookup error: %s", e)
        return PlainTextResponse("Failed to fetch device tokens", status_code=500)
    if not tokens:
        return PlainTextResponse("No device tokens registered for that user.", status_code=404)

    logger.info("send-push: delivering to %d token(s) for user %s", len(set(tokens)), push.targetUserId)
    try:
        results = await dispatch_push(client, settings, tokens, push.title, push.body, push.payload)
    except ConfigurationError as e:
        logger.error("send-push: %s", e)
        return PlainTextResponse(str(e), status_code=500)
    return JSONResponse({"tokens": results})


# --- delete-user ---
@app.api_route("/delete-user", methods=ALL_METHODS)
async def delete_user(
    request: Request,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    if request.method == "OPTIONS":
        return PlainTextResponse("ok", headers=CORS_HEADERS)
    if not settings.has_backend:
        return _json(500, {"error": "Missing Supabase env configuration"})

    access_token = bearer_token(request.headers.get("Authorization", ""))
    if not access_token:
        return _json(401, {"error": "Unauthorized"})

    auth = SupabaseAuth(client, settings)
    try:
        user = await auth.get_user(access_token)
    except AuthenticationError as e:
        logger.info("delete-user: could not resolve caller: %s", e)
        return _json(401, {"error": "Invalid user token"})

    try:
        await auth.delete_user(user["id"])
    except NetworkError as e:
        logger.error("delete-user: failed to delete %s: %s", user["id"], e)
        return _json(500, {"error": "Failed to delete auth user"})

    logger.info("delete-user: deleted account %s", user["id"])
    return _json(200, {"success": True})


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/")
async def read_root():
    return {"message": "lovablee functions are running!"}
