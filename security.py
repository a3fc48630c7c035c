"""
Password hashing, JWT issuing and the request-level auth dependencies.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Depends, Header, HTTPException
from pymongo.database import Database

import config
from database import get_db, now_utc, oid

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def hash_password(pw: str) -> str:
    return bcrypt.hashpw(pw.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(pw: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(pw.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _encode(user: Dict[str, Any], token_type: str, secret: str, ttl: timedelta) -> str:
    issued = now_utc()
    payload = {
        "sub": str(user["_id"]),
        "type": token_type,
        "ver": user.get("token_version", 0),
        "iat": issued,
        "exp": issued + ttl,
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def create_access_token(user: Dict[str, Any]) -> str:
    return _encode(user, "access", config.JWT_SECRET, timedelta(minutes=config.JWT_EXPIRES_MINUTES))


def create_refresh_token(user: Dict[str, Any]) -> str:
    return _encode(user, "refresh", config.JWT_REFRESH_SECRET, timedelta(days=config.JWT_REFRESH_EXPIRES_DAYS))


def create_reset_token(user: Dict[str, Any]) -> str:
    return _encode(user, "reset", config.JWT_SECRET, timedelta(minutes=config.PASSWORD_RESET_EXPIRES_MINUTES))


def decode_token(token: str, token_type: str) -> Dict[str, Any]:
    secret = config.JWT_REFRESH_SECRET if token_type == "refresh" else config.JWT_SECRET
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(401, "Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(401, "Invalid or expired token")
    if payload.get("type") != token_type:
        raise HTTPException(401, "Invalid or expired token")
    return payload


def issue_tokens(user: Dict[str, Any]) -> Dict[str, str]:
    return {"token": create_access_token(user), "refresh_token": create_refresh_token(user)}


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k not in ("password_hash", "token_version")}


def load_user_from_token(database: Database, token: str, token_type: str) -> Dict[str, Any]:
    payload = decode_token(token, token_type)
    user = database["users"].find_one({"_id": oid(payload["sub"])})
    if not user:
        raise HTTPException(401, "User not found")
    if not user.get("is_active", True):
        raise HTTPException(401, "Account is deactivated")
    if payload.get("ver", 0) != user.get("token_version", 0):
        raise HTTPException(401, "Invalid or expired token")
    return user


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_current_user(authorization: Optional[str] = Header(None),
                     database: Database = Depends(get_db)) -> Dict[str, Any]:
    token = _bearer(authorization)
    if not token:
        raise HTTPException(401, "Authentication required")
    return load_user_from_token(database, token, "access")


def get_optional_user(authorization: Optional[str] = Header(None),
                      database: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    token = _bearer(authorization)
    if not token:
        return None
    try:
        return load_user_from_token(database, token, "access")
    except HTTPException:
        return None


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(403, "Admin access required")
    return user
