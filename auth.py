"""
Accounts, tokens and the request dependencies that resolve the current user
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, serialize, to_object_id
from errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from logs import get_logger
from schemas import SELF_SERVICE_ROLES, User as UserSchema
from settings import settings

logger = get_logger("auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6

PUBLIC_USER_FIELDS = ("_id", "name", "email", "role", "isBanned", "isVerified", "createdAt")


# ---------- Helpers ----------

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def check_new_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def public_user(user: dict) -> dict:
    return serialize({k: user.get(k) for k in PUBLIC_USER_FIELDS if k in user})


def create_token(user_id: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def current_user(token: Optional[str], database: Database) -> dict:
    """Resolve a bearer token to the stored user document."""
    if not token:
        raise UnauthorizedError("Authentication required")
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")
    try:
        user_id = to_object_id(data.get("sub"), "User")
    except NotFoundError:
        raise UnauthorizedError("Invalid or expired token")
    user = database["user"].find_one({"_id": user_id})
    if not user:
        raise UnauthorizedError("User no longer exists")
    if user.get("isBanned"):
        raise ForbiddenError("Account suspended")
    return user


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Invalid authorization header")
    return token.strip()


# ---------- Dependencies ----------

def get_current_user(authorization: Optional[str] = Header(None), database: Database = Depends(get_db)) -> dict:
    return current_user(_bearer(authorization), database)


def get_optional_user(authorization: Optional[str] = Header(None), database: Database = Depends(get_db)) -> Optional[dict]:
    # stale or suspended credentials fall back to an anonymous read
    try:
        token = _bearer(authorization)
        if token is None:
            return None
        return current_user(token, database)
    except (UnauthorizedError, ForbiddenError):
        return None


def require_role(*roles: str):
    def dependency(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            label = " or ".join(roles)
            raise ForbiddenError(f"{label.capitalize()} access required")
        return user

    return dependency


# ---------- Account operations ----------

def signup(database: Database, name: Optional[str], email: Optional[str], password: Optional[str],
           role: Optional[str] = None) -> dict:
    if not name or not name.strip() or not email or not password:
        raise ValidationError("Please enter all fields: name, email, and password are required")
    role = role or "student"
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("Invalid role")
    check_new_password(password)
    email = normalize_email(email)

    try:
        user = UserSchema(name=name.strip(), email=email, role=role, password=hash_password(password))
    except PydanticValidationError:
        raise ValidationError("Invalid email address")

    if database["user"].find_one({"email": email}):
        raise ConflictError("Email already registered")
    try:
        user_id = create_document("user", user, database)
    except DuplicateKeyError:
        raise ConflictError("Email already registered")
    logger.info("user registered", extra={"user_id": user_id, "role": role})
    return public_user(database["user"].find_one({"_id": to_object_id(user_id)}))


def login(database: Database, email: Optional[str], password: Optional[str]) -> dict:
    if not email or not password:
        raise ValidationError("Please enter all fields")
    user = database["user"].find_one({"email": normalize_email(email)})
    if not user or not verify_password(password, user.get("password", "")):
        logger.warning("login failed")
        raise UnauthorizedError("Invalid credentials")
    if user.get("isBanned"):
        raise ForbiddenError("Account suspended")
    token = create_token(str(user["_id"]), user.get("role", "student"))
    return {"token": token, "user": public_user(user)}


def get_profile(database: Database, user: dict) -> dict:
    totals = list(database["report"].aggregate([
        {"$match": {"user": user["_id"]}},
        {"$group": {"_id": None, "totalReports": {"$sum": 1}, "totalUpvotes": {"$sum": "$upvotes"}}},
    ]))
    profile = public_user(user)
    profile["totalReports"] = totals[0]["totalReports"] if totals else 0
    profile["totalUpvotes"] = totals[0]["totalUpvotes"] if totals else 0
    return profile


def update_profile(database: Database, user: dict, name: Optional[str]) -> dict:
    if not name or not name.strip():
        raise ValidationError("Name is required")
    database["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"name": name.strip(), "updatedAt": datetime.now(timezone.utc)}},
    )
    return get_profile(database, database["user"].find_one({"_id": user["_id"]}))


def change_password(database: Database, user: dict, current_password: Optional[str],
                    new_password: Optional[str]) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current and new password are required")
    if not verify_password(current_password, user.get("password", "")):
        raise ValidationError("Current password is incorrect")
    check_new_password(new_password)
    set_password(database, user["_id"], new_password)
    logger.info("password changed", extra={"user_id": str(user["_id"])})


def set_password(database: Database, user_id, new_password: str) -> None:
    database["user"].update_one(
        {"_id": user_id},
        {"$set": {"password": hash_password(new_password), "updatedAt": datetime.now(timezone.utc)}},
    )
