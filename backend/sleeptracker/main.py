import json
import logging
from contextlib import asynccontextmanager
import uvicorn
from fastapi import APIRouter, FastAPI, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from . import accounts, follows, sleep_records
from .auth import issue_token, get_current_user_dep
from .cache import TTLCache
from .config import FEED_CACHE_TTL_SECONDS, FRONTEND_ORIGINS, LOG_LEVEL
from .database import AsyncSessionLocal, engine, get_db_async
from .errors import ApiError, NotFoundError
from .models import Base, User, utcnow
from .schemas import (
    ClockToggleOut,
    FeedEntryOut,
    FollowOut,
    LoginIn,
    SignupIn,
    SleepRecordOut,
    TokenOut,
    UserOut,
)


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {'level': record.levelname, 'time': self.formatTime(record, self.datefmt), 'name': record.name, 'message': record.getMessage()}
        if record.exc_info:
            log_record['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(log_record)


handler = logging.StreamHandler()
handler.setFormatter(JsonFormatter())
logging.basicConfig(level=LOG_LEVEL, handlers=[handler])
logger = logging.getLogger(__name__)

# Create tables on startup (async engine + sync-bridge)
async def init_models():
    async with engine.begin() as conn:
        # run_sync lets us call the synchronous create_all() using this async connection
        await conn.run_sync(Base.metadata.create_all)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    await init_models()
    yield
    logger.info("Shutting down application...")
    await engine.dispose()

app = FastAPI(title="Sleep Tracker API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Following feed memo, keyed by (user id, UTC date)
feed_cache = TTLCache(FEED_CACHE_TTL_SECONDS)

# ---- Error handlers ----
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=exc.headers)

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field} {error.get('msg', 'is invalid')}".strip())
    return JSONResponse(status_code=422, content={"errors": messages})

# ---- Routes ----
api = APIRouter(prefix="/api/v1")

@app.get("/health")
async def health():
    return {"status": "ok"}

# --- Auth routes ---
@api.post("/auth/signup", response_model=TokenOut, status_code=201)
async def signup(payload: SignupIn, db: AsyncSession = Depends(get_db_async)):
    u = await accounts.signup(
        db,
        name=payload.user.name,
        email=payload.user.email,
        password=payload.user.password,
        password_confirmation=payload.user.password_confirmation,
    )
    return TokenOut(token=issue_token(u.id), user=UserOut.from_user(u))

@api.post("/auth/login", response_model=TokenOut)
async def login(payload: LoginIn, db: AsyncSession = Depends(get_db_async)):
    u = await accounts.authenticate(db, payload.email, payload.password)
    if not u:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Invalid email or password"})
    return TokenOut(token=issue_token(u.id), user=UserOut.from_user(u))

# --- Users ---
@api.get("/users/me", response_model=UserOut)
async def whoami(me: User = Depends(get_current_user_dep)):
    return UserOut.from_user(me)

async def _existing_user(db: AsyncSession, user_id: int) -> User:
    u = await db.get(User, user_id)
    if not u:
        raise NotFoundError("User not found")
    return u

@api.get("/users/{user_id}/following", response_model=list[UserOut])
async def user_following(user_id: int, db: AsyncSession = Depends(get_db_async), me: User = Depends(get_current_user_dep)):
    await _existing_user(db, user_id)
    return [UserOut.from_user(u) for u in await follows.following(db, user_id)]

@api.get("/users/{user_id}/followers", response_model=list[UserOut])
async def user_followers(user_id: int, db: AsyncSession = Depends(get_db_async), me: User = Depends(get_current_user_dep)):
    await _existing_user(db, user_id)
    return [UserOut.from_user(u) for u in await follows.followers(db, user_id)]

# --- Follows ---
@api.post("/follows/{user_id}", response_model=FollowOut)
async def follow_user(user_id: int, db: AsyncSession = Depends(get_db_async), me: User = Depends(get_current_user_dep)):
    message, users = await follows.follow(db, me.id, user_id)
    return FollowOut(message=message, following=[UserOut.from_user(u) for u in users])

@api.delete("/follows/{user_id}", response_model=FollowOut)
async def unfollow_user(user_id: int, db: AsyncSession = Depends(get_db_async), me: User = Depends(get_current_user_dep)):
    message, users = await follows.unfollow(db, me.id, user_id)
    return FollowOut(message=message, following=[UserOut.from_user(u) for u in users])

# --- Sleep records ---
@api.post("/sleep_records", response_model=ClockToggleOut)
async def clock_toggle(db: AsyncSession = Depends(get_db_async), me: User = Depends(get_current_user_dep)):
    message, records = await sleep_records.toggle_clock(db, me.id)
    return ClockToggleOut(message=message, sleep_records=[SleepRecordOut.from_record(r) for r in records])

@api.get("/sleep_records/mine", response_model=list[SleepRecordOut])
async def my_sleep_records(db: AsyncSession = Depends(get_db_async), me: User = Depends(get_current_user_dep)):
    return [SleepRecordOut.from_record(r) for r in await sleep_records.history(db, me.id)]

@api.get("/sleep_records", response_model=list[FeedEntryOut])
async def following_sleep_records(me: User = Depends(get_current_user_dep)):
    user_id = me.id

    # Shared by concurrent requesters, so it must not borrow any one request's session
    async def build_feed():
        async with AsyncSessionLocal() as session:
            rows = await sleep_records.following_feed(session, user_id)
        return [FeedEntryOut.from_row(record, name) for record, name in rows]

    return await feed_cache.get_or_compute((user_id, utcnow().date().isoformat()), build_feed)

app.include_router(api)


if __name__ == "__main__":
    uvicorn.run("sleeptracker.main:app", host="0.0.0.0", port=8000, reload=True)
