"""
Per-connector error ledger.

Failures are appended as ErrorRecord values (oldest first) rather than raised,
so callers inspect the ledger after a None / False result. Records chain
through ``cause``: a commit failure followed by a failed compensating
rollback yields a rollback record whose cause is the commit record.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from moduledb.core.errors import ErrorKind, ModuleDBError

_log = logging.getLogger(__name__)

_DEFAULT_COMPONENT = "DatabaseConnector"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ErrorRecord:
    kind: ErrorKind
    message: str
    component: str
    timestamp: datetime = field(default_factory=_utc_now)
    cause: Union["ErrorRecord", BaseException, str, None] = None

    def chain(self) -> list["ErrorRecord"]:
        """This record followed by every ErrorRecord reachable through ``cause``."""
        out: list[ErrorRecord] = []
        rec: Any = self
        while isinstance(rec, ErrorRecord) and rec not in out:
            out.append(rec)
            rec = rec.cause
        return out


class ErrorLedger:
    """Ordered, append-only (except reset) list of ErrorRecord."""

    def __init__(self) -> None:
        self._records: list[ErrorRecord] = []

    def populate_error(
        self,
        primary: Any,
        cause: Any = None,
        reset: bool = False,
        *,
        component: str | None = None,
        kind: ErrorKind | None = None,
    ) -> ErrorRecord:
        """
        Append one record built from *primary* and return it.

        - primary: str, exception or ErrorRecord. Taxonomy exceptions
          (ModuleDBError) supply their own kind and component tag. Any other
          shape is recorded as a MALFORMED record instead.
        - cause: defaults to *primary* itself.
        - reset: clear the ledger before appending.
        - component / kind: override the tag; kind defaults to CONFIG for
          strings and RESOURCE for foreign exceptions.
        """
        if reset:
            self.reset_error()
        if cause is None:
            cause = primary

        if isinstance(primary, ErrorRecord):
            record = dataclasses.replace(
                primary,
                timestamp=_utc_now(),
                cause=cause,
                component=component or primary.component,
            )
        elif isinstance(primary, ModuleDBError):
            record = ErrorRecord(
                kind=kind or primary.kind,
                message=primary.message,
                component=component or primary.component,
                cause=cause,
            )
        elif isinstance(primary, BaseException):
            record = ErrorRecord(
                kind=kind or ErrorKind.RESOURCE,
                message=str(primary) or type(primary).__name__,
                component=component or _DEFAULT_COMPONENT,
                cause=cause,
            )
        elif isinstance(primary, str):
            record = ErrorRecord(
                kind=kind or ErrorKind.CONFIG,
                message=primary,
                component=component or _DEFAULT_COMPONENT,
                cause=cause,
            )
        else:
            record = ErrorRecord(
                kind=ErrorKind.MALFORMED,
                message=f"Invalid error shape provided: {type(primary).__name__}",
                component="ErrorLedger",
                cause=None,
            )

        self._records.append(record)
        _log.warning(
            "[%s] %s error: %s", record.component, record.kind.value, record.message
        )
        return record

    def get_error(self) -> list[ErrorRecord]:
        """Copy of the ledger, oldest first."""
        return list(self._records)

    def get_last_error(self) -> ErrorRecord | None:
        return self._records[-1] if self._records else None

    def reset_error(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
