from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Protocol, TextIO


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class EventLogger(Protocol):
    def debug(self, event: str, *, url: str | None = None, **data: Any) -> None: ...

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None: ...

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None: ...

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None: ...

    def exception(
        self, event: str, *, exc: BaseException, url: str | None = None, **data: Any
    ) -> None: ...


class NullLogger:
    """Drops every event. Used when no run log is configured."""

    def debug(self, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def exception(
        self, event: str, *, exc: BaseException, url: str | None = None, **data: Any
    ) -> None:
        return None


class RunLogger:
    """
    JSONL logger for scrape sessions.

    Each log line is a single JSON object tagged with the session id and the
    component that emitted it, so one file can be filtered per stage.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        overwrite: bool = True,
        session_id: str | None = None,
        component: str | None = None,
        min_level: str = "INFO",
    ) -> None:
        self._path = Path(path)
        self._overwrite = bool(overwrite)
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._component = (component or "").strip() or None
        self._min_rank = _LEVEL_RANK.get(min_level.strip().upper(), 20)
        self._fp: TextIO | None = None
        self._lock = Lock()
        self._opened = False
        self._parent: RunLogger | None = None

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        overwrite: bool = True,
        session_id: str | None = None,
        min_level: str = "INFO",
    ) -> "RunLogger":
        logger = cls(path, overwrite=overwrite, session_id=session_id, min_level=min_level)
        logger._ensure_open()
        return logger

    @property
    def session_id(self) -> str:
        return self._session_id

    def child(self, component: str) -> "RunLogger":
        """Return a logger writing to the same file under another component name."""
        root = self._root()
        sub = RunLogger(
            root._path,
            overwrite=False,
            session_id=root._session_id,
            component=component,
        )
        sub._min_rank = root._min_rank
        sub._parent = root
        return sub

    def close(self) -> None:
        root = self._root()
        with root._lock:
            if root._fp is not None:
                try:
                    root._fp.flush()
                finally:
                    root._fp.close()
                root._fp = None

    def __enter__(self) -> "RunLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def debug(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("DEBUG", event, url=url, **data)

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("INFO", event, url=url, **data)

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("WARN", event, url=url, **data)

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, url=url, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        url: str | None = None,
        **data: Any,
    ) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(
                    traceback.format_exception(
                        type(exc), exc, exc.__traceback__
                    )
                ),
                limit=12000,
            ),
        }
        self.log("ERROR", event, url=url, error=err, **data)

    def log(self, level: str, event: str, *, url: str | None = None, **data: Any) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        if _LEVEL_RANK.get(lvl, 20) < self._min_rank:
            return
        ev = (event or "").strip() or "event"

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": ev,
            "session_id": self._session_id,
        }

        if self._component:
            record["component"] = self._component

        u = (url or "").strip()
        if u:
            record["url"] = u

        if data:
            record["data"] = data

        self._root()._write(record)

    def _root(self) -> "RunLogger":
        node = self
        while node._parent is not None:
            node = node._parent
        return node

    def _ensure_open(self) -> None:
        root = self._root()
        if root._fp is not None:
            return

        with root._lock:
            if root._fp is not None:
                return

            root._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if root._overwrite and not root._opened else "a"

            root._fp = root._path.open(mode, encoding="utf-8", newline="\n")
            root._opened = True

    def _write(self, record: dict[str, Any]) -> None:
        self._ensure_open()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()


_LEVEL_RANK = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}


def child_logger(logger: EventLogger | None, component: str) -> EventLogger:
    """Scope a logger to a component, or return a NullLogger when none is given."""
    if logger is None:
        return NullLogger()
    child = getattr(logger, "child", None)
    if callable(child):
        return child(component)
    return logger
