"""Domain exceptions and store-unavailability handling."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that mean "the store could not be reached", not "the request was wrong".
UNAVAILABLE_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    PoolTimeoutError,
    OSError,
)


class ParkRankError(Exception):
    """Base class for all domain errors."""


class NotFoundError(ParkRankError):
    """A referenced park, challenge or window does not exist."""


class ValidationError(ParkRankError):
    """The request was rejected before any mutation."""


class InvalidVoteError(ValidationError):
    """Malformed park pair or a winner outside the pair."""


class UnknownAchievementError(ValidationError):
    """Achievement code is not one of the seeded definitions."""


class InvalidNotificationTypeError(ValidationError):
    """Notification type outside the allowed set."""


class VoteConflictError(ParkRankError):
    """Rating compare-and-swap kept losing to concurrent votes. Safe to retry."""


class ReferralCodeError(ParkRankError):
    """Could not draw an unused referral code."""


def degrade_on_unavailable(default: Callable[[], Any]) -> Callable[
    [Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]
]:
    """Turn store outages into a logged warning plus ``default()``.

    The wrapped coroutine must take the session as its first argument; the
    session is rolled back so it can be reused by the caller.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(db: Any, *args: Any, **kwargs: Any) -> T:
            try:
                return await func(db, *args, **kwargs)
            except UNAVAILABLE_ERRORS:
                logger.warning("Store unavailable in %s, returning default", func.__name__, exc_info=True)
                try:
                    await db.rollback()
                except UNAVAILABLE_ERRORS:
                    logger.debug("Rollback after outage failed", exc_info=True)
                return default()

        return wrapper

    return decorator
