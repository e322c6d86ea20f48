import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker, validates

from weather_dashboard import config

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fold_city_name(name: str) -> str:
    return name.strip().casefold()


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class City(Base):
    __tablename__ = "cities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    city_name: Mapped[str] = mapped_column(String(120))
    # Case-folded city_name, used for lookups and uniqueness
    city_key: Mapped[str] = mapped_column(String(120))
    country: Mapped[str] = mapped_column(String(120), default="")
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False)

    # Snapshot dicts, oldest first. Reassign rather than mutate in place.
    weather_history: Mapped[list] = mapped_column(JSON, default=list)
    weather_insights: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)

    @validates("city_name")
    def _set_city_key(self, key, value):
        self.city_key = fold_city_name(value)
        return value

    def __repr__(self):
        return f"<City {self.id} {self.city_name}, {self.country} user={self.user_id}>"


# A user tracks each city name once, ignoring case
Index("uq_cities_user_city_key", City.user_id, City.city_key, unique=True)


def make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(config.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def connect_with_retry(bind=None, retries: int | None = None, delay: float | None = None) -> bool:
    """Connect to storage and create tables, retrying at a fixed delay.

    Gives up after `retries` extra attempts and returns False without
    raising, so the server keeps serving and storage calls fail per request.
    """
    bind = bind if bind is not None else engine
    retries = config.DB_CONNECT_RETRIES if retries is None else retries
    delay = config.DB_RETRY_DELAY if delay is None else delay

    for attempt in range(retries + 1):
        try:
            Base.metadata.create_all(bind)
            logger.info("Database connected successfully.")
            return True
        except SQLAlchemyError as exc:
            logger.error("Database connection error: %s", exc)
            attempts_left = retries - attempt
            if attempts_left > 0:
                logger.info("Retrying in %ss (%d attempts left)", delay, attempts_left)
                await asyncio.sleep(delay)

    logger.error("Database failed after all retries. Server stays up but storage calls will fail.")
    return False
