"""
errors.py — AppError base class, domain errors and the error code registry.

Every error returned by the TrackVote API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Invariants referenced throughout the codebase:
  INV-1  Budget            — per (user, week): sum(coins_spent) <= MAX_COINS
  INV-2  Single active week — at most one is_active week per group
  INV-3  No duplicates      — (group_week_id, catalog_id) is unique
  INV-4  Cross-reference    — a vote's track belongs to the vote's week
  INV-5  Active week only   — tracks and votes attach only to an active week
  INV-6  Membership         — only members may read/write group data (403)
  INV-7  Derived standings  — counts and budgets are recomputed from vote rows

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    # Clients may retry the same request unchanged (upstream/store outages).
    retryable: bool = False

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.retryable:
            payload["retryable"] = True
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# IMPORTANT: these are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_INVITE_CODE_FORMAT = "INVALID_INVITE_CODE_FORMAT"
    INVALID_WEEK_RANGE         = "INVALID_WEEK_RANGE"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    DUPLICATE_TRACK            = "DUPLICATE_TRACK"         # INV-3
    WEEK_ALREADY_EXISTS        = "WEEK_ALREADY_EXISTS"
    CONFLICT                   = "CONFLICT"                # INV-2 race

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    WEEK_NOT_FOUND             = "WEEK_NOT_FOUND"
    TRACK_NOT_FOUND            = "TRACK_NOT_FOUND"
    INVALID_INVITE_CODE        = "INVALID_INVITE_CODE"

    # ── Business Rule Violations (422) ────────────────────────────────────
    INACTIVE_WEEK              = "INACTIVE_WEEK"           # INV-5
    NO_ACTIVE_WEEK             = "NO_ACTIVE_WEEK"          # INV-5
    BUDGET_EXCEEDED            = "BUDGET_EXCEEDED"         # INV-1
    TRACK_NOT_IN_WEEK          = "TRACK_NOT_IN_WEEK"       # INV-4

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (INV-6, admin-only)
    TOKEN_MISSING              = "TOKEN_MISSING"           # 401
    TOKEN_INVALID              = "TOKEN_INVALID"           # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"           # 401
    FORBIDDEN                  = "FORBIDDEN"               # 403

    # ── Upstream / Store Errors ────────────────────────────────────────────
    CATALOG_UNAVAILABLE        = "CATALOG_UNAVAILABLE"     # 502
    STORE_UNAVAILABLE          = "STORE_UNAVAILABLE"       # 503

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Domain errors ──────────────────────────────────────────────────────────
#
# Each carries a fixed code and status so services raise them by name and
# callers can catch them by type. They remain AppErrors, so the global
# handler renders them like any other.
# ──────────────────────────────────────────────────────────────────────────

class InactiveWeekError(AppError):
    """Action attempted against a week that is not (or no longer) active."""

    def __init__(self, week_id: int | None = None, message: str | None = None) -> None:
        self.week_id = week_id
        super().__init__(
            ErrorCode.INACTIVE_WEEK,
            message or f"Week {week_id} is not active. Tracks and votes can only be added to the active week.",
            422,
        )


class NoActiveWeekError(InactiveWeekError):
    """The group has no active week at all."""

    def __init__(self, group_id: int) -> None:
        self.group_id = group_id
        super().__init__(
            message=f"Group {group_id} has no active voting week.",
        )
        self.code = ErrorCode.NO_ACTIVE_WEEK


class DuplicateTrackError(AppError):
    """The same catalog track was already submitted for this week (INV-3)."""

    def __init__(self, week_id: int, catalog_id: str) -> None:
        self.week_id = week_id
        self.catalog_id = catalog_id
        super().__init__(
            ErrorCode.DUPLICATE_TRACK,
            f"Track {catalog_id} is already in the list for week {week_id}.",
            409,
            field="catalog_id",
        )


class BudgetExceededError(AppError):
    """The vote would push the user's spend for the week past MAX_COINS (INV-1)."""

    def __init__(self, user_id: str, week_id: int, requested: int, remaining: int) -> None:
        self.user_id = user_id
        self.week_id = week_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            ErrorCode.BUDGET_EXCEEDED,
            f"Not enough coins: requested {requested}, {remaining} remaining this week.",
            422,
            field="coins",
        )


class TrackWeekMismatchError(AppError):
    """The track belongs to a different week than the one voted in (INV-4)."""

    def __init__(self, track_id: int, week_id: int) -> None:
        self.track_id = track_id
        self.week_id = week_id
        super().__init__(
            ErrorCode.TRACK_NOT_IN_WEEK,
            f"Track {track_id} does not belong to week {week_id}.",
            422,
            field="track_id",
        )


class ConflictError(AppError):
    """A concurrent week activation won the race (INV-2)."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.CONFLICT, message, 409)


class CatalogUnavailableError(AppError):
    """The third-party catalog search failed. The caller may retry."""

    retryable = True

    def __init__(self, message: str = "The track catalog is unavailable. Please try again.") -> None:
        super().__init__(ErrorCode.CATALOG_UNAVAILABLE, message, 502)


class StoreUnavailableError(AppError):
    """The database could not be reached. Fatal to this operation only."""

    retryable = True

    def __init__(self, message: str = "The data store is temporarily unavailable. Please try again.") -> None:
        super().__init__(ErrorCode.STORE_UNAVAILABLE, message, 503)


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Track was added but the submitter had no coins left for the auto-vote.
    AUTO_VOTE_SKIPPED = "AUTO_VOTE_SKIPPED"
