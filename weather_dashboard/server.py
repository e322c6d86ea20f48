import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from openai import AsyncAzureOpenAI
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from weather_dashboard import cities as city_store
from weather_dashboard import config
from weather_dashboard.analysis import analysis_input, run_weather_analysis
from weather_dashboard.auth import AuthError, authenticate, create_token, get_current_user, register_user
from weather_dashboard.chat import run_chat
from weather_dashboard.db import User, connect_with_retry, get_db
from weather_dashboard.llm import AnalysisError, make_chat_client
from weather_dashboard.models import (
    AddCityRequest,
    ChatRequest,
    ChatResponse,
    CityListResponse,
    CityRecord,
    HealthResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    TokenResponse,
    UserProfile,
    WeatherAnalysisResponse,
)
from weather_dashboard.weather import WeatherProviderError, fetch_weather_data

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not config.WEATHER_API_KEY:
        logger.warning(
            "WEATHER_API_KEY is not set. "
            "Weather lookups will fail until the key is configured."
        )
    if config.JWT_SECRET == config.DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; using the development default.")

    # Serve while storage is still connecting
    app.state.storage_task = asyncio.create_task(connect_with_retry())

    app.state.llm_client = None
    try:
        app.state.llm_client = make_chat_client()
        logger.info("Chat client initialized successfully.")
    except Exception as exc:
        logger.warning("Failed to initialize chat client: %s", exc)
    yield
    if app.state.llm_client is not None:
        await app.state.llm_client.close()
        logger.info("Chat client closed.")

    app.state.storage_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.storage_task


app = FastAPI(
    title="Weather Dashboard",
    description="Personal weather dashboard with rule-based insights and LLM analysis.",
    version="1.0.0",
    lifespan=lifespan,
)


# ── Custom exception handlers ────────────────────────────────────────────────

FIELD_LABELS = {
    "cityName": "City name",
    "message": "Message",
    "username": "Username",
    "email": "Email",
    "password": "Password",
}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return 400 (not FastAPI's default 422) naming the first bad field."""
    errors = exc.errors()
    message = "Invalid request body."
    if errors:
        loc = errors[0].get("loc", ())
        if len(loc) > 1 and errors[0].get("type") != "json_invalid":
            field = loc[-1]
            if errors[0].get("type") in ("missing", "string_too_short"):
                message = f"{FIELD_LABELS.get(field, field)} is required"
            else:
                message = f"Invalid value for {field}."
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Normalise all HTTP errors to {"message": "..."} instead of {"detail": ...}."""
    if isinstance(exc.detail, dict) and "message" in exc.detail:
        content = exc.detail
    else:
        content = {"message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception):
    logger.error("Unexpected exception in %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Server error", "error": str(exc)})


# ── Dependencies ─────────────────────────────────────────────────────────────

def get_llm_client(request: Request) -> AsyncAzureOpenAI:
    chat_client = getattr(request.app.state, "llm_client", None)
    if chat_client is None:
        logger.error("Language model client requested but not initialized")
        raise HTTPException(status_code=500, detail="Language model service not available.")
    return chat_client


# ── Auth ─────────────────────────────────────────────────────────────────────

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", response_model=TokenResponse, status_code=201)
def register(body: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    try:
        user = register_user(db, body.username.strip(), body.email.strip(), body.password)
    except AuthError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return TokenResponse(token=create_token(user.id), username=user.username)


@auth_router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    try:
        user = authenticate(db, body.username.strip(), body.password)
    except AuthError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return TokenResponse(token=create_token(user.id), username=user.username)


@auth_router.get("/me", response_model=UserProfile)
def me(user: User = Depends(get_current_user)) -> UserProfile:
    return UserProfile(id=user.id, username=user.username, email=user.email, created_at=user.created_at)


# ── Cities ───────────────────────────────────────────────────────────────────

city_router = APIRouter(prefix="/api/cities", tags=["cities"])


@city_router.post("", response_model=CityRecord, status_code=201)
async def add_city(
    body: AddCityRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CityRecord:
    try:
        return await city_store.add_city(db, user, body.city_name)
    except (city_store.CityExistsError, city_store.CityLookupError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@city_router.get("", response_model=CityListResponse)
async def get_cities(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CityListResponse:
    return await city_store.list_cities(db, user)


@city_router.put("/{city_id}/favorite", response_model=CityRecord)
def toggle_favorite(
    city_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CityRecord:
    try:
        return city_store.toggle_favorite(db, user, city_id)
    except city_store.CityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@city_router.delete("/{city_id}", response_model=MessageResponse)
def delete_city(
    city_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    try:
        city_store.delete_city(db, user, city_id)
    except city_store.CityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return MessageResponse(message="City removed")


# ── AI ───────────────────────────────────────────────────────────────────────

ai_router = APIRouter(prefix="/api/ai", tags=["ai"])


@ai_router.get("/weather-analysis/{city_name}", response_model=WeatherAnalysisResponse)
async def weather_analysis(
    city_name: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chat_client: AsyncAzureOpenAI = Depends(get_llm_client),
) -> WeatherAnalysisResponse:
    logger.info("Incoming GET /weather-analysis: city=%r, user=%s", city_name, user.id)

    city = city_store.find_city_by_name(db, user.id, city_name)
    if city is None:
        raise HTTPException(status_code=404, detail=f'City "{city_name}" not found in your dashboard.')

    try:
        data = await fetch_weather_data(city.city_name)
    except WeatherProviderError:
        raise HTTPException(status_code=502, detail="Failed to fetch weather data for AI analysis.")

    try:
        state = analysis_input(city.city_name, city.country, data, city.weather_history or [])
        result = await run_weather_analysis(state, chat_client)
    except AnalysisError as exc:
        logger.error("AnalysisError in /weather-analysis: %s", exc)
        raise HTTPException(status_code=500, detail={"message": "AI analysis failed.", "error": str(exc)})
    except Exception as exc:
        logger.error("Unexpected exception in /weather-analysis", exc_info=True)
        raise HTTPException(status_code=500, detail={"message": "AI analysis failed.", "error": str(exc)})

    return WeatherAnalysisResponse(
        city=result.city,
        country=result.country,
        current_weather=result.current,
        ai_summary=result.summary,
        ai_prediction=result.prediction,
        ai_alerts=result.alerts,
        risk_score=result.risk_score,
    )


@ai_router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user: User = Depends(get_current_user),
    chat_client: AsyncAzureOpenAI = Depends(get_llm_client),
) -> ChatResponse:
    logger.info(
        "Incoming POST /chat: message=%r, cities=%d, user=%s",
        request.message[:80],
        len(request.cities),
        user.id,
    )

    try:
        reply = await run_chat(request.message, request.cities, chat_client)
    except AnalysisError as exc:
        logger.error("AnalysisError in /chat: %s", exc)
        raise HTTPException(status_code=500, detail={"message": "Chat failed.", "error": str(exc)})
    except Exception as exc:
        logger.error("Unexpected exception in /chat", exc_info=True)
        raise HTTPException(status_code=500, detail={"message": "Chat failed.", "error": str(exc)})

    return ChatResponse(reply=reply)


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        model=config.MODEL_DEPLOYMENT_NAME,
        weather_api_key_configured=bool(config.WEATHER_API_KEY),
    )


app.include_router(auth_router)
app.include_router(city_router)
app.include_router(ai_router)

# Static client last so it never shadows the API
if config.STATIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=config.STATIC_DIR, html=True), name="client")


def main() -> None:
    uvicorn.run(
        "weather_dashboard.server:app",
        host="0.0.0.0",
        port=config.PORT,
        reload=False,
    )


if __name__ == "__main__":
    main()
