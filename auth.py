import logging
import secrets
from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pymongo.database import Database

from config import Settings
from database import PASSWORD_RESETS, USERS
from deps import get_clock, get_db, get_mailer, get_settings
from errors import BadRequest, Forbidden, InvalidCredentials, NotFound
from notifications import Mailer, send_password_reset_email, send_welcome_email
from schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    to_document,
)
from security import (
    create_access_token,
    get_current_user,
    hash_password,
    require_role,
    verify_password,
)
from utils import Clock, generate_unique_id, serialize_user

logger = logging.getLogger(__name__)

router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, we have sent password reset instructions."


def auth_payload(user: dict, token: str) -> dict:
    return {
        "id": str(user["_id"]),
        "uniqueid": user.get("uniqueid"),
        "email": user["email"],
        "profile": user.get("profile"),
        "bank": user.get("bank"),
        "role": user.get("role", "user"),
        "token": token,
    }


def find_valid_reset(db: Database, token: str, now) -> dict:
    return db[PASSWORD_RESETS].find_one({"token": token, "used": False, "expiresAt": {"$gt": now}})


@router.post("/register", status_code=201)
def register(
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer: Mailer = Depends(get_mailer),
    clock: Clock = Depends(get_clock),
):
    email = body.email.lower()
    users = db[USERS]
    if users.find_one({"email": email}):
        raise BadRequest(detail="User with this email already exists")
    if body.uniqueid and users.find_one({"uniqueid": body.uniqueid}):
        raise BadRequest(detail="User with this unique ID already exists")
    if users.find_one({"profile.mobileNumber": body.profile.mobile_number}):
        raise BadRequest(detail="User with this mobile number already exists")

    now = clock()
    user_doc = {
        "email": email,
        "password": hash_password(body.password, settings.BCRYPT_ROUNDS),
        "uniqueid": body.uniqueid or generate_unique_id("USER"),
        "profile": to_document(body.profile),
        "bank": to_document(body.bank),
        "role": "user",
        "isActive": True,
        "lastLogin": None,
        "createdAt": now,
        "updatedAt": now,
    }
    res = users.insert_one(user_doc)
    user_doc["_id"] = res.inserted_id
    logger.info(f"User registered: {email} ({user_doc['uniqueid']})")

    background_tasks.add_task(send_welcome_email, mailer, serialize_user(user_doc))
    return {"success": True, "data": auth_payload(user_doc, create_access_token(user_doc, settings))}


@router.post("/login")
def login(
    body: LoginRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    email = body.email.lower()
    user = db[USERS].find_one({"email": email})
    if not user or not verify_password(body.password, user.get("password")):
        logger.warning(f"Failed login for {email}")
        raise InvalidCredentials()
    if not user.get("isActive", True):
        logger.warning(f"Login refused for inactive user {email}")
        raise Forbidden(detail="User inactive")

    now = clock()
    db[USERS].update_one({"_id": user["_id"]}, {"$set": {"lastLogin": now}})
    user["lastLogin"] = now
    logger.info(f"User logged in: {email}")
    return {"success": True, "data": auth_payload(user, create_access_token(user, settings))}


@router.get("/me")
def me(user=Depends(get_current_user)):
    return {"success": True, "data": serialize_user(user)}


@router.post("/forgot-password")
def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer: Mailer = Depends(get_mailer),
    clock: Clock = Depends(get_clock),
):
    email = body.email.lower()
    user = db[USERS].find_one({"email": email})
    if user:
        token = secrets.token_urlsafe(32)
        now = clock()
        db[PASSWORD_RESETS].insert_one({
            "userId": user["_id"],
            "email": email,
            "token": token,
            "expiresAt": now + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
            "used": False,
            "ipAddress": request.client.host if request.client else None,
            "userAgent": request.headers.get("user-agent"),
            "createdAt": now,
        })
        logger.info(f"Password reset requested for {email}")
        background_tasks.add_task(
            send_password_reset_email,
            mailer,
            email,
            user.get("profile", {}).get("ownerName", ""),
            token,
            settings.PASSWORD_RESET_EXPIRE_MINUTES,
        )
    # same answer whether or not the account exists
    return {"success": True, "message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password")
def reset_password(
    body: ResetPasswordRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    now = clock()
    reset = find_valid_reset(db, body.token, now)
    if not reset:
        raise BadRequest(detail="Invalid or expired reset token")
    user = db[USERS].find_one({"_id": reset["userId"]}, {"_id": 1, "email": 1})
    if not user:
        raise BadRequest(detail="User not found")

    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(body.password, settings.BCRYPT_ROUNDS), "updatedAt": now}},
    )
    db[PASSWORD_RESETS].update_one({"_id": reset["_id"]}, {"$set": {"used": True}})
    db[PASSWORD_RESETS].delete_many({"userId": user["_id"], "_id": {"$ne": reset["_id"]}})
    logger.info(f"Password reset completed for {user['email']}")
    return {
        "success": True,
        "message": "Password has been reset successfully. You can now log in with your new password.",
    }


@router.get("/verify-reset-token/{token}")
def verify_reset_token(token: str, db: Database = Depends(get_db), clock: Clock = Depends(get_clock)):
    reset = find_valid_reset(db, token, clock())
    if not reset:
        raise BadRequest(detail="Invalid or expired reset token")
    user = db[USERS].find_one({"_id": reset["userId"]}, {"profile.ownerName": 1})
    name = (user or {}).get("profile", {}).get("ownerName") or "User"
    return {
        "success": True,
        "data": {"email": reset["email"], "userName": name, "expiresAt": reset["expiresAt"]},
    }


@router.delete("/cleanup-reset-tokens")
def cleanup_reset_tokens(
    user=Depends(require_role("admin")),
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    result = db[PASSWORD_RESETS].delete_many({"$or": [{"expiresAt": {"$lt": clock()}}, {"used": True}]})
    return {"success": True, "message": f"Cleaned up {result.deleted_count} expired reset tokens"}


@router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    stored = db[USERS].find_one({"_id": user["_id"]}, {"password": 1})
    if not stored:
        raise NotFound(detail="User not found")
    if not verify_password(body.current_password, stored.get("password")):
        raise BadRequest(detail="Current password is incorrect")
    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(body.new_password, settings.BCRYPT_ROUNDS), "updatedAt": clock()}},
    )
    logger.info(f"Password changed for {user['email']}")
    return {"success": True, "message": "Password changed successfully"}
