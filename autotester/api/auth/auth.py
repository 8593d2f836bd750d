import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from jose import jwt
from passlib.hash import bcrypt
from pymongo.collection import Collection

from autotester.api.auth.auth_dto import (
    LoginRequest,
    MeResponse,
    RegisterRequest,
    Token,
    UsageResponse,
)
from autotester.config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from autotester.run_utils.db import get_user_collection, to_object_id
from autotester.run_utils.quota import QuotaState, UsageLimiter
from autotester.utils.auth import get_current_user
from autotester.utils.dto import CurrentUser
from autotester.utils.errors import InputInvalid, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def token_for_user(user: dict) -> str:
    return create_access_token(
        data={
            "sub": str(user["_id"]),
            "username": user["username"],
            "is_admin": bool(user.get("is_admin", False)),
        }
    )


@router.post("/register", response_model=Token)
async def register_user(
    data: RegisterRequest, users: Collection = Depends(get_user_collection)
):
    if users.find_one({"$or": [{"email": data.email}, {"username": data.username}]}):
        raise InputInvalid("Username or email already registered.")

    user = {
        "username": data.username,
        "email": data.email,
        "password": bcrypt.hash(data.password),
        "is_admin": False,
        "subscription_status": "free",
        "ai_request_count": 0,
        "last_ai_request_time": None,
        "created_at": datetime.now(timezone.utc),
    }
    result = users.insert_one(user)
    user["_id"] = result.inserted_id
    logger.info("Registered user %s", data.username)
    return {"access_token": token_for_user(user), "token_type": "bearer"}


async def authenticate_user(collection: Collection, username: str, password: str):
    user = collection.find_one({"username": username})
    if not user:
        return None
    if not bcrypt.verify(password, user["password"]):
        return None
    return user


@router.post("/login", response_model=Token)
async def login(data: LoginRequest, users: Collection = Depends(get_user_collection)):
    user = await authenticate_user(users, data.username, data.password)
    if not user:
        raise InputInvalid("Invalid username or password")
    return {"access_token": token_for_user(user), "token_type": "bearer"}


@router.get("/users/me", response_model=MeResponse)
async def read_current_user(
    current_user: CurrentUser = Depends(get_current_user),
    users: Collection = Depends(get_user_collection),
):
    user = users.find_one({"_id": to_object_id(current_user.id)})
    if not user:
        raise NotFound("User not found")
    limiter = UsageLimiter(users)
    state = QuotaState.from_user(user, limiter.tz)
    return MeResponse(
        id=current_user.id,
        username=current_user.username,
        isAdmin=current_user.is_admin,
        subscriptionStatus=user.get("subscription_status"),
        usage=UsageResponse(
            usedToday=state.used_on(limiter.today()),
            dailyLimit=None if state.exempt else limiter.daily_limit,
        ),
    )
