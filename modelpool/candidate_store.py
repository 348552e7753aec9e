from __future__ import annotations
import json, os, threading, time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Protocol, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from .logging_setup import get_logger
from .metrics import store_write_failures_total
from .schemas import CandidatePool
from .settings import Settings, settings

log = get_logger("store")

T = TypeVar("T")


class StoreBackend(Protocol):
    name: str

    def read(self) -> Optional[CandidatePool]:
        """Return the persisted pool, or None when nothing was persisted yet."""

    def write(self, pool: CandidatePool) -> None: ...


def _ensure_parent(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


class JsonFileBackend:
    """Single JSON document; writes are atomic replaces."""

    name = "file"

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def read(self) -> Optional[CandidatePool]:
        if not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as f:
            return CandidatePool.model_validate_json(f.read())

    def write(self, pool: CandidatePool) -> None:
        _ensure_parent(self.path)
        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        data = json.dumps(pool.model_dump(mode="json"), ensure_ascii=False, indent=2)
        try:
            with tmp.open("w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        finally:
            if tmp.exists():
                tmp.unlink()


class MemoryBackend:
    """Keeps a serialized copy so a read never aliases the caller's objects."""

    name = "memory"

    def __init__(self, pool: Optional[CandidatePool] = None):
        self._payload: Optional[str] = pool.model_dump_json() if pool is not None else None

    def read(self) -> Optional[CandidatePool]:
        if self._payload is None:
            return None
        return CandidatePool.model_validate_json(self._payload)

    def write(self, pool: CandidatePool) -> None:
        self._payload = pool.model_dump_json()


STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS candidate_pool_state (
      name TEXT PRIMARY KEY,
      payload TEXT NOT NULL,
      updated_at FLOAT
    )
    """,
]


class SqlBackend:
    """Stores the whole pool as one row, upserted on every write."""

    name = "sql"

    def __init__(self, url: str, *, pool_name: str = "default", engine: Optional[Engine] = None):
        self.url = url
        self.pool_name = pool_name
        self._engine = engine or _create_engine(url)
        self._ready = False

    def _ensure_schema(self) -> None:
        if self._ready:
            return
        with self._engine.begin() as conn:
            for stmt in STATEMENTS:
                conn.execute(text(stmt))
        self._ready = True

    def read(self) -> Optional[CandidatePool]:
        self._ensure_schema()
        with self._engine.connect() as conn:
            row = conn.execute(text("""
                SELECT payload FROM candidate_pool_state WHERE name = :name
            """), dict(name=self.pool_name)).first()
        if row is None:
            return None
        return CandidatePool.model_validate_json(row[0])

    def write(self, pool: CandidatePool) -> None:
        self._ensure_schema()
        params = dict(name=self.pool_name, payload=pool.model_dump_json(), ts=time.time())
        with self._engine.begin() as conn:
            res = conn.execute(text("""
                UPDATE candidate_pool_state
                SET payload = :payload, updated_at = :ts
                WHERE name = :name
            """), params)
            if res.rowcount == 0:
                conn.execute(text("""
                    INSERT INTO candidate_pool_state(name, payload, updated_at)
                    VALUES (:name, :payload, :ts)
                """), params)


def _create_engine(url: str) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        _ensure_parent(Path(parsed.database))
    return create_engine(url, pool_pre_ping=True)


class CandidateStore:
    """
    Owns the candidate pool and its persistence backend.

    All read-modify-write cycles go through one re-entrant lock, so concurrent
    requests in the same process never lose an update. Persistence is best
    effort: load() never raises and save() only logs, keeping the last pool in
    memory when the backend cannot be written.
    """

    def __init__(self, backend: StoreBackend):
        self.backend = backend
        self._lock = threading.RLock()
        self._memory: Optional[CandidatePool] = None
        self._write_failed = False

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            yield

    def load(self) -> CandidatePool:
        with self._lock:
            # the backend holds an older pool than the one we failed to write
            if self._write_failed and self._memory is not None:
                return self._memory.model_copy(deep=True)
            try:
                pool = self.backend.read()
            except Exception as exc:
                log.warning("store.load_failed", {"backend": self.backend.name, "err": str(exc)})
                if self._memory is not None:
                    return self._memory.model_copy(deep=True)
                return CandidatePool()
            if pool is None:
                pool = CandidatePool()
            self._memory = pool.model_copy(deep=True)
            return pool

    def save(self, pool: CandidatePool) -> bool:
        with self._lock:
            self._memory = pool.model_copy(deep=True)
            try:
                self.backend.write(pool)
            except Exception as exc:
                self._write_failed = True
                store_write_failures_total.inc()
                log.error("store.save_failed", {"backend": self.backend.name, "err": str(exc)})
                return False
            self._write_failed = False
            return True

    def mutate(self, fn: Callable[[CandidatePool], T]) -> T:
        with self._lock:
            pool = self.load()
            result = fn(pool)
            self.save(pool)
            return result


def build_store(cfg: Settings = settings) -> CandidateStore:
    """Decide backend: POOL_STORE_BACKEND=sql|memory, anything else means the JSON file."""
    kind = (cfg.store_backend or "file").lower()
    backend: StoreBackend
    if kind == "sql":
        backend = SqlBackend(cfg.database_url)
    elif kind == "memory":
        backend = MemoryBackend()
    else:
        backend = JsonFileBackend(cfg.store_path)
    return CandidateStore(backend)
