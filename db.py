from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import time
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Mapping
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

import fundraiser
import security

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_ID = "fundraiser"

_ENGINE_CACHE: dict[str, Engine] = {}
_APP_DIR = Path(__file__).resolve().parent


class StoreError(RuntimeError):
    pass


class StoreWriteError(StoreError):
    pass


class NotAuthorized(PermissionError):
    pass


def _now_ts() -> int:
    return int(time.time())


def _resolve_path(env_var: str, filename: str) -> Path:
    env_path = os.getenv(env_var)
    if env_path:
        p = Path(env_path).expanduser()
        if not p.is_absolute():
            p = _APP_DIR / p
        return p

    # The app directory may be read-only on hosted platforms.
    candidates = [
        _APP_DIR / "data" / filename,
        Path.home() / ".superbowl_squares" / filename,
        Path("/tmp") / f"superbowl_squares_{filename}",
    ]
    for p in candidates:
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            return p
        except OSError:
            continue
    return candidates[-1]


def state_path() -> Path:
    return _resolve_path("SQUARES_STATE_PATH", "squares.json")


def db_path() -> Path:
    return _resolve_path("SQUARES_DB_PATH", "squares.db")


def database_url() -> str | None:
    return (
        os.getenv("DATABASE_URL")
        or os.getenv("NEON_DATABASE_URL")
        or os.getenv("POSTGRES_URL")
        or os.getenv("POSTGRES_URL_NON_POOLING")
    )


def _normalize_database_url(url: str) -> str:
    # Neon commonly provides `postgres://...` which SQLAlchemy expects as `postgresql://...`.
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://") :]

    parsed = urlparse(url)
    q = dict(parse_qsl(parsed.query, keep_blank_values=True))
    q.setdefault("sslmode", "require")
    return urlunparse(parsed._replace(query=urlencode(q)))


def _get_engine(url: str) -> Engine:
    engine = _ENGINE_CACHE.get(url)
    if engine is None:
        engine = create_engine(_normalize_database_url(url), pool_pre_ping=True)
        _ENGINE_CACHE[url] = engine
    return engine


def connect(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def db(*, path: Path | None = None, url: str | None = None) -> Iterator[Any]:
    if url:
        with _get_engine(url).begin() as conn:
            yield conn
        return

    conn = connect(path or db_path())
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def _is_sqlite_conn(conn: Any) -> bool:
    return isinstance(conn, sqlite3.Connection)


def _execute(conn: Any, sql: str, params: dict[str, Any] | None = None) -> Any:
    if _is_sqlite_conn(conn):
        return conn.execute(sql, params or {})
    return conn.execute(text(sql), params or {})


def _fetchone(conn: Any, sql: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
    if _is_sqlite_conn(conn):
        row = conn.execute(sql, params or {}).fetchone()
        return dict(row) if row else None
    row = conn.execute(text(sql), params or {}).mappings().fetchone()
    return dict(row) if row else None


def _fetchall(conn: Any, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    if _is_sqlite_conn(conn):
        return [dict(r) for r in conn.execute(sql, params or {}).fetchall()]
    return [dict(r) for r in conn.execute(text(sql), params or {}).mappings().fetchall()]


def init_db(conn: Any) -> None:
    if _is_sqlite_conn(conn):
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS documents (
              id TEXT PRIMARY KEY,
              body_json TEXT NOT NULL,
              updated_at_ts INTEGER NOT NULL,
              updated_by TEXT
            );

            CREATE TABLE IF NOT EXISTS activity_log (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              created_at_ts INTEGER NOT NULL,
              actor TEXT,
              action TEXT NOT NULL,
              details_json TEXT NOT NULL
            );
            """
        )
        return

    _execute(
        conn,
        """
        CREATE TABLE IF NOT EXISTS documents (
          id TEXT PRIMARY KEY,
          body_json TEXT NOT NULL,
          updated_at_ts BIGINT NOT NULL,
          updated_by TEXT NULL
        )
        """,
    )
    _execute(
        conn,
        """
        CREATE TABLE IF NOT EXISTS activity_log (
          id BIGSERIAL PRIMARY KEY,
          created_at_ts BIGINT NOT NULL,
          actor TEXT NULL,
          action TEXT NOT NULL,
          details_json TEXT NOT NULL
        )
        """,
    )


def get_document(conn: Any, doc_id: str) -> dict[str, Any] | None:
    return _fetchone(
        conn,
        "SELECT id, body_json, updated_at_ts, updated_by FROM documents WHERE id = :id",
        {"id": doc_id},
    )


def put_document(conn: Any, doc_id: str, body_json: str, *, updated_by: str | None) -> None:
    _execute(
        conn,
        """
        INSERT INTO documents (id, body_json, updated_at_ts, updated_by)
        VALUES (:id, :body, :ts, :by)
        ON CONFLICT(id) DO UPDATE SET
          body_json = excluded.body_json,
          updated_at_ts = excluded.updated_at_ts,
          updated_by = excluded.updated_by
        """,
        {"id": doc_id, "body": body_json, "ts": _now_ts(), "by": updated_by},
    )


def log_action(conn: Any, actor: str | None, action: str, details: dict[str, Any]) -> None:
    _execute(
        conn,
        "INSERT INTO activity_log (created_at_ts, actor, action, details_json) VALUES (:ts, :actor, :action, :details)",
        {
            "ts": _now_ts(),
            "actor": actor,
            "action": action,
            "details": json.dumps(details, separators=(",", ":")),
        },
    )


def recent_activity(conn: Any, limit: int = 50) -> list[dict[str, Any]]:
    return _fetchall(
        conn,
        "SELECT * FROM activity_log ORDER BY id DESC LIMIT :limit",
        {"limit": int(limit)},
    )


def prune_activity_log(conn: Any, *, keep_last: int) -> None:
    if int(keep_last) <= 0:
        _execute(conn, "DELETE FROM activity_log")
        return
    _execute(
        conn,
        """
        DELETE FROM activity_log
        WHERE id NOT IN (
          SELECT id FROM (SELECT id FROM activity_log ORDER BY id DESC LIMIT :keep) AS newest
        )
        """,
        {"keep": int(keep_last)},
    )


class LocalJsonStore:
    """One named JSON blob on disk. Anyone who can reach the app can write it."""

    variant = "local"

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"Could not read {self.path}: {e}") from e

    def save(self, state: Mapping[str, Any], *, actor_email: str | None = None) -> dict[str, Any]:
        snapshot = fundraiser.stamped(state)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(snapshot, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreWriteError(f"Could not write {self.path}: {e}") from e
        return snapshot

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreWriteError(f"Could not delete {self.path}: {e}") from e
        logger.info("Cleared local board at %s", self.path)


class DocumentStore:
    """One named document in SQLite or Postgres; writes need an allow-listed admin."""

    variant = "hosted"

    def __init__(
        self,
        *,
        admin_emails: Iterable[str],
        path: Path | None = None,
        url: str | None = None,
        document_id: str = DEFAULT_DOCUMENT_ID,
    ) -> None:
        self.admin_emails = security.parse_admin_emails(list(admin_emails))
        self.path = path
        self.url = url
        self.document_id = document_id
        self._listeners: list[Callable[[], Callable[[dict[str, Any]], None] | None]] = []
        self._lock = threading.Lock()
        self._last_body: str | None = None
        with self._db() as conn:
            init_db(conn)

    @property
    def backend_label(self) -> str:
        return "postgres" if self.url else "sqlite"

    def _db(self):
        return db(path=self.path, url=self.url)

    def load(self) -> str | None:
        try:
            with self._db() as conn:
                row = get_document(conn, self.document_id)
        except (sqlite3.Error, SQLAlchemyError) as e:
            raise StoreError(f"Could not read document {self.document_id!r}: {e}") from e
        return str(row["body_json"]) if row else None

    def is_admin(self, email: str | None) -> bool:
        return security.is_admin_email(email, self.admin_emails)

    def save(
        self,
        state: Mapping[str, Any],
        *,
        actor_email: str | None,
        action: str = "save",
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not self.is_admin(actor_email):
            logger.warning("Rejected %s of %r by non-admin %r", action, self.document_id, actor_email)
            raise NotAuthorized("Only admins can change the board.")

        actor = security.normalize_email(actor_email)
        snapshot = fundraiser.stamped(state)
        body = json.dumps(snapshot, separators=(",", ":"), ensure_ascii=False)
        try:
            with self._db() as conn:
                put_document(conn, self.document_id, body, updated_by=actor)
                log_action(conn, actor, action, {"filled": fundraiser.filled_count(snapshot), **(details or {})})
        except (sqlite3.Error, SQLAlchemyError) as e:
            raise StoreWriteError(f"Could not save document {self.document_id!r}: {e}") from e

        logger.info("Saved %r (%s) by %s", self.document_id, action, actor)
        with self._lock:
            self._last_body = body
        self._notify(snapshot)
        return snapshot

    def clear(self, *, actor_email: str | None) -> dict[str, Any]:
        return self.save(fundraiser.default_state(), actor_email=actor_email, action="reset")

    def subscribe(self, on_change: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        """Call `on_change` with each new snapshot. Bound methods are held weakly."""
        if hasattr(on_change, "__self__") and hasattr(on_change, "__func__"):
            ref: Callable[[], Callable[[dict[str, Any]], None] | None] = weakref.WeakMethod(on_change)  # type: ignore[arg-type]
        else:
            ref = lambda: on_change  # noqa: E731

        with self._lock:
            self._listeners.append(ref)

        def unsubscribe() -> None:
            with self._lock:
                if ref in self._listeners:
                    self._listeners.remove(ref)

        return unsubscribe

    def _notify(self, snapshot: dict[str, Any]) -> None:
        with self._lock:
            self._listeners = [ref for ref in self._listeners if ref() is not None]
            callbacks = [ref() for ref in self._listeners]
        for cb in callbacks:
            if cb is None:
                continue
            try:
                cb(fundraiser.load_merged(snapshot))
            except Exception:
                logger.exception("Snapshot listener failed")

    def poll(self) -> bool:
        """Look for writes made elsewhere; notify subscribers when the document changed."""
        body = self.load()
        if body is None:
            return False
        with self._lock:
            if body == self._last_body:
                return False
            self._last_body = body
        self._notify(fundraiser.load_merged(body))
        return True

    def recent_activity(self, limit: int = 15) -> list[dict[str, Any]]:
        with self._db() as conn:
            return recent_activity(conn, limit=limit)

    def prune_activity(self, *, keep_last: int, actor_email: str | None) -> None:
        if not self.is_admin(actor_email):
            raise NotAuthorized("Only admins can prune the activity log.")
        with self._db() as conn:
            prune_activity_log(conn, keep_last=keep_last)
            log_action(conn, security.normalize_email(actor_email), "prune_activity_log", {"keep": int(keep_last)})


def get_store() -> LocalJsonStore | DocumentStore:
    backend = (os.getenv("SQUARES_BACKEND") or "local").strip().lower()
    if backend == "hosted":
        url = database_url()
        store = DocumentStore(
            admin_emails=security.admin_emails_from_env(),
            path=None if url else db_path(),
            url=url,
            document_id=os.getenv("SQUARES_DOCUMENT_ID") or DEFAULT_DOCUMENT_ID,
        )
        if not store.admin_emails:
            logger.warning("SQUARES_ADMIN_EMAILS is empty; nobody can save the hosted board")
        logger.info("Using hosted board on %s (document %r)", store.backend_label, store.document_id)
        return store
    if backend != "local":
        raise ValueError(f"Unknown SQUARES_BACKEND: {backend!r} (expected 'local' or 'hosted')")
    store_ = LocalJsonStore(state_path())
    logger.info("Using local board at %s", store_.path)
    return store_
