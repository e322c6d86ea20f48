import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from weather_dashboard import config
from weather_dashboard.db import User, get_db

logger = logging.getLogger(__name__)


class AuthError(Exception):
    pass


# ---------------- Passwords ----------------

def hash_password(plain: str) -> str:
    return generate_password_hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return check_password_hash(hashed, plain)
    except ValueError:
        return False


# ---------------- Tokens ----------------

def create_token(user_id: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(days=config.JWT_EXP_DAYS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> int:
    """Return the user id carried by a token, or raise AuthError."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
        return int(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError) as exc:
        raise AuthError("Token is not valid") from exc


# ---------------- Users ----------------

def register_user(db: Session, username: str, email: str, password: str) -> User:
    existing = db.scalar(
        select(User).where(or_(User.username == username, User.email == email))
    )
    if existing is not None:
        raise AuthError("User already exists")

    user = User(username=username, email=email, password_hash=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AuthError("User already exists") from exc
    db.refresh(user)
    logger.info("Registered user id=%s username=%r", user.id, username)
    return user


def authenticate(db: Session, username: str, password: str) -> User:
    user = db.scalar(select(User).where(User.username == username))
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Failed login for username=%r", username)
        raise AuthError("Invalid credentials")
    return user


# ---------------- Dependency ----------------

def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="No token, authorization denied")

    try:
        user_id = decode_token(token.strip())
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc))

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Token is not valid")
    return user
