"""Durable JSON-file persistence of the current token record.

This module hosts :class:`TokenStore`, the only component that touches the
token file.  Its design follows these goals:

* **Atomicity** – writes use *temp-file + os.replace*; readers never observe a
  partially written file.
* **Classification** – every read failure is mapped to exactly one
  :class:`~outlook_mcp.auth.errors.ErrorCode`; load paths never raise.
* **Dedup** – concurrent asynchronous loads collapse into one disk read.
* **Privacy** – the file is created with mode ``0600``.

File format
-----------
A JSON object pretty-printed with a 2-space indent::

    {
      "access_token": "...",
      "refresh_token": "...",
      "expires_at": 1700000000000,
      "expires_in": 3600,
      "scope": "Mail.Read ...",
      "token_type": "Bearer"
    }
"""

from __future__ import annotations

import json
import logging
import os
import stat
from pathlib import Path

from anyio import Path as AsyncPath, to_thread

from outlook_mcp.auth.cache import TokenCache
from outlook_mcp.auth.errors import (
    ErrorCode,
    ErrorReason,
    ErrorRegister,
    TokenStoreError,
)
from outlook_mcp.auth.models import Err, Ok, Result, TokenRecord, TokenSchemaError
from outlook_mcp.auth.singleflight import SingleFlight

_LOG = logging.getLogger("outlook-mcp.auth.store")


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2)
    os.chmod(tmp, stat.S_IRUSR | stat.S_IWUSR)
    os.replace(tmp, path)  # atomic on POSIX


def _read_error(path: Path, exc: OSError) -> ErrorReason:
    if isinstance(exc, FileNotFoundError):
        return ErrorReason(
            ErrorCode.TOKEN_FILE_MISSING,
            f"Token file not found at {path}",
            path=str(path),
        )
    return ErrorReason(
        ErrorCode.TOKEN_FILE_READ_ERROR,
        f"Error loading token file at {path}: {exc}",
        path=str(path),
    )


def _parse(path: Path, text: str) -> Result[TokenRecord]:
    """Classify *text* as a token record, malformed JSON or a wrong shape."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        return Err(
            ErrorReason(
                ErrorCode.TOKEN_FILE_INVALID_JSON,
                f"Invalid token JSON at {path}: {exc}",
                path=str(path),
            )
        )
    try:
        return Ok(TokenRecord.from_dict(data))
    except TokenSchemaError as exc:
        if exc.kind == "not_object":
            message = f"Token file at {path} does not contain a valid JSON object"
        else:
            message = f"Token file at {path} is invalid: {exc}"
        return Err(
            ErrorReason(ErrorCode.TOKEN_FILE_INVALID_SHAPE, message, path=str(path))
        )


# --------------------------------------------------------------------------- #
# Store                                                                       #
# --------------------------------------------------------------------------- #
class TokenStore:
    """JSON-file token persistence bound to a :class:`TokenCache`.

    Successful loads and saves update the cache and clear the shared
    :class:`ErrorRegister`; failures record a structured reason in it.
    """

    def __init__(
        self,
        path: str | os.PathLike,
        *,
        cache: TokenCache,
        errors: ErrorRegister,
    ) -> None:
        self.path = Path(path).expanduser()
        self.cache = cache
        self.errors = errors
        self._load_flight: SingleFlight[TokenRecord | None] = SingleFlight("token load")

    # ---------------- reading -------------------------------------------- #
    async def _read_text(self) -> str:
        return await AsyncPath(self.path).read_text(encoding="utf-8")

    async def read(self) -> Result[TokenRecord]:
        """Read and validate the file without touching cache or register."""
        try:
            text = await self._read_text()
        except OSError as exc:
            return Err(_read_error(self.path, exc))
        except UnicodeDecodeError as exc:
            return Err(
                ErrorReason(
                    ErrorCode.TOKEN_FILE_INVALID_JSON,
                    f"Invalid token JSON at {self.path}: {exc}",
                    path=str(self.path),
                )
            )
        return _parse(self.path, text)

    def _accept(self, result: Result[TokenRecord]) -> TokenRecord | None:
        if isinstance(result, Err):
            _LOG.error("%s", result.reason.message)
            self.errors.record(result.reason)
            return None
        self.cache.set(result.value)
        self.errors.clear()
        return result.value

    async def _load_from_disk(self) -> TokenRecord | None:
        return self._accept(await self.read())

    async def load(self, *, use_cache: bool = True) -> TokenRecord | None:
        """Return the current record or ``None``; never raises.

        Concurrent calls issued while a disk read is pending share its
        outcome.  With *use_cache* a populated cache short-circuits the disk.
        """
        if use_cache:
            cached = self.cache.get()
            if cached is not None:
                return cached
        return await self._load_flight.run(self._load_from_disk)

    def load_sync(self) -> TokenRecord | None:
        """Blocking variant of :meth:`load` for status checks."""
        cached = self.cache.get()
        if cached is not None:
            return cached
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            return self._accept(Err(_read_error(self.path, exc)))
        except UnicodeDecodeError as exc:
            return self._accept(
                Err(
                    ErrorReason(
                        ErrorCode.TOKEN_FILE_INVALID_JSON,
                        f"Invalid token JSON at {self.path}: {exc}",
                        path=str(self.path),
                    )
                )
            )
        return self._accept(_parse(self.path, text))

    # ---------------- writing -------------------------------------------- #
    async def save(self, record: TokenRecord | None) -> None:
        """Persist *record* and make it the cached record."""
        if record is None:
            _LOG.warning("No tokens to save")
            return
        try:
            await to_thread.run_sync(_atomic_write, self.path, record.to_dict())
        except OSError as exc:
            reason = self.errors.record(
                ErrorReason(
                    ErrorCode.TOKEN_FILE_WRITE_ERROR,
                    f"Error writing token file at {self.path}: {exc}",
                    path=str(self.path),
                )
            )
            _LOG.error("%s", reason.message)
            raise TokenStoreError(reason.message, reason=reason) from exc
        self.cache.set(record)
        self.errors.clear()
        _LOG.info("Tokens saved to %s", self.path)

    async def clear(self) -> None:
        """Forget the cached record and delete the file (best effort)."""
        self.cache.clear()
        try:
            await AsyncPath(self.path).unlink()
        except FileNotFoundError:
            _LOG.debug("Token file not found at %s, nothing to delete", self.path)
        except OSError as exc:
            _LOG.error("Error deleting token file %s: %s", self.path, exc)
        else:
            _LOG.info("Token file deleted")
