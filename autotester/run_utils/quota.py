"""
Daily generation quota for users without a paid subscription.

The counter lives on the user document (``ai_request_count`` and
``last_ai_request_time``). A request is admitted and counted in one
compare-and-swap against the values that were read, so two concurrent
requests from the same user cannot both consume the last slot.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from autotester.config import DAILY_AI_LIMIT, QUOTA_TIMEZONE
from autotester.run_utils.db import to_object_id
from autotester.utils.errors import Forbidden, QuotaExceeded, StorageError

logger = logging.getLogger(__name__)

EXEMPT_SUBSCRIPTIONS = ("active", "trialing")
MAX_UPDATE_ATTEMPTS = 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes that are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class QuotaState:
    count: int
    window_start: Optional[date]
    exempt: bool = False

    @classmethod
    def from_user(cls, user: Dict[str, Any], tz: tzinfo) -> "QuotaState":
        last = user.get("last_ai_request_time")
        return cls(
            count=int(user.get("ai_request_count") or 0),
            window_start=as_utc(last).astimezone(tz).date() if last else None,
            exempt=user.get("subscription_status") in EXEMPT_SUBSCRIPTIONS,
        )

    def used_on(self, day: date) -> int:
        return self.count if self.window_start == day else 0


class UsageLimiter:
    def __init__(
        self,
        users: Collection,
        daily_limit: int = DAILY_AI_LIMIT,
        timezone_name: str = QUOTA_TIMEZONE,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.users = users
        self.daily_limit = daily_limit
        self.tz = ZoneInfo(timezone_name)
        self.clock = clock

    def today(self) -> date:
        return as_utc(self.clock()).astimezone(self.tz).date()

    def _load_user(self, user_id: str) -> Dict[str, Any]:
        oid = to_object_id(user_id)
        user = None
        if oid is not None:
            try:
                user = self.users.find_one({"_id": oid})
            except PyMongoError as e:
                raise StorageError(f"Failed to load usage quota: {e}")
        if not user:
            logger.warning("Quota check for unknown user %s rejected", user_id)
            raise Forbidden("Usage quota is unavailable for this account.")
        return user

    def state(self, user_id: str) -> QuotaState:
        return QuotaState.from_user(self._load_user(user_id), self.tz)

    def admit(self, user_id: str) -> QuotaState:
        """Count one generation request against the user's daily quota or raise QuotaExceeded."""
        for _ in range(MAX_UPDATE_ATTEMPTS):
            user = self._load_user(user_id)
            state = QuotaState.from_user(user, self.tz)
            if state.exempt:
                return state

            now = as_utc(self.clock())
            today = now.astimezone(self.tz).date()
            used = state.used_on(today)
            if used >= self.daily_limit:
                logger.info("User %s hit the daily AI limit (%d)", user_id, self.daily_limit)
                raise QuotaExceeded(self.daily_limit)
            new_state = QuotaState(count=used + 1, window_start=today)

            guard = {
                "_id": user["_id"],
                "ai_request_count": user.get("ai_request_count"),
                "last_ai_request_time": user.get("last_ai_request_time"),
            }
            try:
                result = self.users.update_one(
                    guard,
                    {
                        "$set": {
                            "ai_request_count": new_state.count,
                            "last_ai_request_time": now,
                        }
                    },
                )
            except PyMongoError as e:
                raise StorageError(f"Failed to record usage quota: {e}")
            if result.matched_count == 1:
                logger.info(
                    "User %s AI usage count: %d today.", user_id, new_state.count
                )
                return new_state
            logger.debug("Quota update for %s lost a race, retrying", user_id)

        raise QuotaExceeded(
            self.daily_limit,
            message="Usage quota is being updated concurrently. Please retry shortly.",
        )
