import logging
from datetime import date, datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
import emailer
from database import get_db, now_utc
from responses import success
from schemas import User
from security import (create_reset_token, get_current_user, hash_password, issue_tokens,
                      load_user_from_token, public_user, verify_password)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterBody(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: str = Field(..., min_length=1, max_length=20)


class LoginBody(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshBody(BaseModel):
    refresh_token: str


class ForgotPasswordBody(BaseModel):
    email: EmailStr


class ResetPasswordBody(BaseModel):
    token: str
    password: str = Field(..., min_length=6)


class ChangePasswordBody(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class ProfileBody(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, min_length=1, max_length=20)
    gender: Optional[Literal["male", "female", "other"]] = None
    date_of_birth: Optional[date] = None


def _auth_payload(user: Dict[str, Any]) -> Dict[str, Any]:
    return {**issue_tokens(user), "user": public_user(user)}


@router.post("/register", status_code=201)
def register(body: RegisterBody, db: Database = Depends(get_db)):
    email = body.email.lower()
    if db["users"].find_one({"email": email}):
        raise HTTPException(400, "Email already exists")
    user = User(
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        phone=body.phone.strip(),
    ).model_dump()
    user["created_at"] = user["updated_at"] = now_utc()
    try:
        user["_id"] = db["users"].insert_one(user).inserted_id
    except DuplicateKeyError:
        raise HTTPException(400, "Email already exists")
    logger.info("Registered user %s", user["_id"])
    emailer.notify("welcome", email, {"customer_name": user["first_name"]})
    return success(_auth_payload(user), "User registered successfully")


@router.post("/login")
def login(body: LoginBody, db: Database = Depends(get_db)):
    user = db["users"].find_one({"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("password_hash")):
        raise HTTPException(401, "Invalid email or password")
    if not user.get("is_active", True):
        raise HTTPException(401, "Account is deactivated")
    db["users"].update_one({"_id": user["_id"]}, {"$set": {"last_login": now_utc()}})
    return success(_auth_payload(user), "Login successful")


@router.post("/refresh-token")
def refresh_token(body: RefreshBody, db: Database = Depends(get_db)):
    user = load_user_from_token(db, body.refresh_token, "refresh")
    return success(issue_tokens(user), "Token refreshed")


@router.post("/forgot-password")
def forgot_password(body: ForgotPasswordBody, db: Database = Depends(get_db)):
    user = db["users"].find_one({"email": body.email.lower()})
    if not user:
        raise HTTPException(404, "User not found")
    reset_url = f"{config.FRONTEND_URL}/reset-password/{create_reset_token(user)}"
    emailer.notify("password_reset", user["email"], {"customer_name": user.get("first_name"), "reset_url": reset_url})
    return success(None, "Password reset link sent to your email")


@router.post("/reset-password")
def reset_password(body: ResetPasswordBody, db: Database = Depends(get_db)):
    user = load_user_from_token(db, body.token, "reset")
    db["users"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(body.password), "updated_at": now_utc()},
         "$inc": {"token_version": 1}},
    )
    return success(None, "Password reset successful")


@router.get("/profile")
def get_profile(user: Dict[str, Any] = Depends(get_current_user)):
    return success(public_user(user), "Profile fetched successfully")


@router.put("/profile")
def update_profile(body: ProfileBody, user: Dict[str, Any] = Depends(get_current_user),
                   db: Database = Depends(get_db)):
    updates = body.model_dump(exclude_none=True)
    if "date_of_birth" in updates:
        dob = updates["date_of_birth"]
        updates["date_of_birth"] = datetime(dob.year, dob.month, dob.day)
    updates["updated_at"] = now_utc()
    db["users"].update_one({"_id": user["_id"]}, {"$set": updates})
    return success(public_user(db["users"].find_one({"_id": user["_id"]})), "Profile updated successfully")


@router.post("/change-password")
def change_password(body: ChangePasswordBody, user: Dict[str, Any] = Depends(get_current_user),
                    db: Database = Depends(get_db)):
    if not verify_password(body.current_password, user.get("password_hash")):
        raise HTTPException(400, "Current password is incorrect")
    db["users"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(body.new_password), "updated_at": now_utc()},
         "$inc": {"token_version": 1}},
    )
    fresh = db["users"].find_one({"_id": user["_id"]})
    return success(issue_tokens(fresh), "Password changed successfully")


@router.post("/logout")
def logout(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    db["users"].update_one({"_id": user["_id"]}, {"$inc": {"token_version": 1}})
    return success(None, "Logout successful")
