"""SQLite-backed persistence for users, pets and adoptions."""
from __future__ import annotations

import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, TypeVar

import anyio
from passlib.context import CryptContext

from .errors import DuplicateKeyError, StoreError
from .store import AdoptionCollection, PetCollection, UserCollection

logger = logging.getLogger("adoptme.database")

T = TypeVar("T")

_SQLITE_URL_PREFIX = "sqlite:///"
_UNIQUE_FAILURE = re.compile(r"UNIQUE constraint failed: (?P<columns>.+)$")

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database.

    Accepts a plain filesystem path or a ``sqlite:///`` URL.
    """

    if env_value:
        if env_value.startswith(_SQLITE_URL_PREFIX):
            env_value = env_value[len(_SQLITE_URL_PREFIX):]
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "adoptme.sqlite3").resolve(strict=False)


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def _translate_integrity_error(exc: sqlite3.IntegrityError) -> StoreError:
    message = str(exc)
    match = _UNIQUE_FAILURE.search(message)
    if match:
        columns = tuple(part.strip() for part in match.group("columns").split(","))
        return DuplicateKeyError(message, fields=columns)
    return StoreError(message)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT,
    role TEXT NOT NULL DEFAULT 'user',
    last_connection TEXT,
    failed_login_attempts INTEGER NOT NULL DEFAULT 0,
    lock_until TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pets (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    specie TEXT NOT NULL,
    breed TEXT,
    birth_date TEXT,
    adopted INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'available',
    owner_id TEXT REFERENCES users(id) ON DELETE SET NULL,
    image TEXT,
    description TEXT,
    location TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_pets (
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    pet_id TEXT NOT NULL,
    added_at TEXT NOT NULL,
    PRIMARY KEY (user_id, pet_id)
);

CREATE TABLE IF NOT EXISTS user_documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    reference TEXT NOT NULL,
    uploaded_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS adoptions (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    pet_id TEXT NOT NULL REFERENCES pets(id) ON DELETE CASCADE,
    status TEXT NOT NULL DEFAULT 'pending',
    notes TEXT,
    adoption_fee REAL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS adoption_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    adoption_id TEXT NOT NULL REFERENCES adoptions(id) ON DELETE CASCADE,
    from_status TEXT,
    to_status TEXT NOT NULL,
    actor_id TEXT,
    created_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_adoptions_pet_in_flight
    ON adoptions(pet_id) WHERE status IN ('pending', 'approved');
CREATE INDEX IF NOT EXISTS idx_adoptions_owner ON adoptions(owner_id);
CREATE INDEX IF NOT EXISTS idx_adoption_events_adoption ON adoption_events(adoption_id);
CREATE INDEX IF NOT EXISTS idx_pets_owner ON pets(owner_id);
CREATE INDEX IF NOT EXISTS idx_pets_specie_adopted ON pets(specie, adopted);
CREATE INDEX IF NOT EXISTS idx_user_documents_user ON user_documents(user_id);
"""


class _StoreCall:
    """Connections opened by one ``Database.run`` call.

    When the awaiting task is cancelled the running statements are
    interrupted and any connection opened afterwards is refused.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: List[sqlite3.Connection] = []
        self._interrupted = False

    def attach(self, conn: sqlite3.Connection) -> None:
        with self._lock:
            if self._interrupted:
                raise StoreError("Store call was cancelled")
            self._connections.append(conn)

    def detach(self, conn: sqlite3.Connection) -> None:
        with self._lock:
            if conn in self._connections:
                self._connections.remove(conn)

    def interrupt(self) -> None:
        with self._lock:
            self._interrupted = True
            for conn in self._connections:
                conn.interrupt()


class Database:
    """Owns the SQLite file and hands out the entity collections.

    Every store call opens its own connection, so collections are safe to use
    from the worker threads ``run`` dispatches to.
    """

    def __init__(
        self,
        path: Path,
        *,
        store_timeout: Optional[float] = None,
        busy_timeout: float = 30.0,
    ) -> None:
        _ensure_directory(path)
        self._path = path
        self._store_timeout = store_timeout
        self._busy_timeout = busy_timeout
        self._local = threading.local()
        self.users = UserCollection(self._connect)
        self.pets = PetCollection(self._connect)
        self.adoptions = AdoptionCollection(self._connect)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path, timeout=self._busy_timeout)
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open database {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        call: Optional[_StoreCall] = getattr(self._local, "call", None)
        try:
            if call is not None:
                call.attach(conn)
            conn.execute("PRAGMA foreign_keys = ON")
            with conn:
                yield conn
        except sqlite3.IntegrityError as exc:
            raise _translate_integrity_error(exc) from exc
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        finally:
            if call is not None:
                call.detach(conn)
            conn.close()

    def initialize(self) -> None:
        """Create the required tables and indexes if they do not already exist."""

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(_SCHEMA)
        logger.debug("Database schema ready at %s", self._path)

    async def run(self, func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """Run a blocking store call in a worker thread.

        If the awaiting task is cancelled, or the store timeout expires, the
        statements the call is executing are interrupted and the thread's
        result is discarded.
        """

        call = _StoreCall()

        def invoke() -> T:
            self._local.call = call
            try:
                return func(*args, **kwargs)
            finally:
                self._local.call = None

        if self._store_timeout is None:
            return await self._dispatch(call, invoke)
        try:
            with anyio.fail_after(self._store_timeout):
                return await self._dispatch(call, invoke)
        except TimeoutError as exc:
            raise StoreError(
                f"Storage call timed out after {self._store_timeout:g}s"
            ) from exc

    async def _dispatch(self, call: _StoreCall, invoke: Callable[[], T]) -> T:
        try:
            return await anyio.to_thread.run_sync(invoke, abandon_on_cancel=True)
        except anyio.get_cancelled_exc_class():
            call.interrupt()
            logger.debug("Interrupted store call of a cancelled request")
            raise


__all__ = ["Database", "hash_password", "resolve_database_path", "verify_password"]
