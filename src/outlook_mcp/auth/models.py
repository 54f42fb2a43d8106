"""Typed, immutable records used by the token lifecycle.

:class:`TokenRecord` is validated at the deserialization boundary by
:meth:`TokenRecord.from_dict`.  Shape problems raise :class:`TokenSchemaError`
whose ``kind`` distinguishes a non-object payload from a missing required
field and from a field of the wrong type.  Malformed JSON never reaches this
module; it is classified by the store before parsing into a record.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Final, Generic, Literal, Mapping, TypeVar, Union

from outlook_mcp.auth.clock import Clock, default_clock, now_ms
from outlook_mcp.auth.errors import ErrorReason

DEFAULT_EXPIRES_IN: Final[int] = 3600

SchemaErrorKind = Literal["not_object", "missing_field", "wrong_type"]

_T = TypeVar("_T")


class TokenSchemaError(ValueError):
    """Raised when a token payload does not match the record schema."""

    def __init__(self, kind: SchemaErrorKind, message: str, *, field: str | None = None):
        super().__init__(message)
        self.kind: SchemaErrorKind = kind
        self.field: str | None = field


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TokenSchemaError("wrong_type", f"{key} must be a string", field=key)
    return value


def _optional_int(data: Mapping[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TokenSchemaError("wrong_type", f"{key} must be a number", field=key)
    if not math.isfinite(value):
        raise TokenSchemaError("wrong_type", f"{key} must be a finite number", field=key)
    return int(value)


def _expires_in(body: Mapping[str, Any]) -> int:
    """Lifetime in seconds from a token response; absent means the default."""
    raw = body.get("expires_in")
    if raw is None:
        return DEFAULT_EXPIRES_IN
    if isinstance(raw, float) and not math.isfinite(raw):
        raise TokenSchemaError(
            "wrong_type", "expires_in must be a finite number", field="expires_in"
        )
    try:
        return int(raw)
    except (TypeError, ValueError):
        return DEFAULT_EXPIRES_IN


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """Snapshot of an OAuth access/refresh token pair.

    ``expires_at`` is milliseconds since the UNIX epoch and is always computed
    locally from ``expires_in``.
    """

    access_token: str
    expires_at: int | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    token_type: str | None = None

    # ------------------------------------------------------------------ #
    # (de)serialisation                                                  #
    # ------------------------------------------------------------------ #
    @classmethod
    def from_dict(cls, data: Any) -> TokenRecord:
        """Validate *data* and build a record; unknown keys are ignored."""
        if not isinstance(data, Mapping):
            raise TokenSchemaError("not_object", "token data is not a JSON object")

        access_token = data.get("access_token")
        if access_token is None or access_token == "":
            raise TokenSchemaError(
                "missing_field", "access_token is missing", field="access_token"
            )
        if not isinstance(access_token, str):
            raise TokenSchemaError(
                "wrong_type", "access_token must be a string", field="access_token"
            )

        return cls(
            access_token=access_token,
            expires_at=_optional_int(data, "expires_at"),
            refresh_token=_optional_str(data, "refresh_token"),
            expires_in=_optional_int(data, "expires_in"),
            scope=_optional_str(data, "scope"),
            token_type=_optional_str(data, "token_type"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted representation (unset fields omitted)."""
        fields = (
            "access_token",
            "refresh_token",
            "expires_at",
            "expires_in",
            "scope",
            "token_type",
        )
        return {k: getattr(self, k) for k in fields if getattr(self, k) is not None}

    @classmethod
    def from_token_response(
        cls,
        body: Mapping[str, Any],
        *,
        clock: Clock = default_clock,
        previous_refresh_token: str | None = None,
    ) -> TokenRecord:
        """Build a record from a token endpoint response.

        ``expires_at`` is derived from the issue time and ``expires_in``; a
        missing refresh token in *body* falls back to
        *previous_refresh_token*.
        """
        access_token = body.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenSchemaError(
                "missing_field",
                "Token response missing access_token",
                field="access_token",
            )
        expires_in = _expires_in(body)
        refresh_token = body.get("refresh_token") or previous_refresh_token
        scope = body.get("scope")
        token_type = body.get("token_type")
        return cls(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            expires_in=expires_in,
            expires_at=now_ms(clock) + expires_in * 1000,
            scope=scope if isinstance(scope, str) else None,
            token_type=token_type if isinstance(token_type, str) else None,
        )


# --------------------------------------------------------------------------- #
# Explicit results                                                            #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class Ok(Generic[_T]):
    """Successful outcome carrying *value*."""

    value: _T
    ok: Literal[True] = True


@dataclass(frozen=True, slots=True)
class Err:
    """Failed outcome carrying the structured *reason*."""

    reason: ErrorReason
    ok: Literal[False] = False


Result = Union[Ok[_T], Err]
