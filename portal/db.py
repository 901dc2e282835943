import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class MonitoredQueuePool(QueuePool):
    """QueuePool that also counts callers blocked waiting for a connection.

    A checkout counts as waiting only when every connection the pool may open
    (pool size plus overflow) is already checked out. Hooks QueuePool's
    ``_do_get``, which is internal to SQLAlchemy.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._waiting = 0
        self._waiting_lock = threading.Lock()

    def exhausted(self) -> bool:
        limit = self.size() + max(self._max_overflow, 0)
        return self._max_overflow >= 0 and self.checkedout() >= limit

    def _do_get(self):
        if not self.exhausted():
            return super()._do_get()
        with self._waiting_lock:
            self._waiting += 1
        try:
            return super()._do_get()
        finally:
            with self._waiting_lock:
                self._waiting -= 1

    @property
    def waiting(self) -> int:
        return self._waiting


def _is_memory_sqlite(url) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def build_engine(database_url: str, settings: Settings) -> Engine:
    url = make_url(database_url)
    kwargs = {"future": True, "pool_pre_ping": True}
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        # For SQLite, enable check_same_thread=False for multithreading in FastAPI
        connect_args["check_same_thread"] = False
    elif url.get_backend_name() == "postgresql":
        connect_args["connect_timeout"] = max(1, int(settings.pool_acquire_timeout))

    if not _is_memory_sqlite(url):
        kwargs.update(
            poolclass=MonitoredQueuePool,
            pool_size=settings.pool_max_connections,
            max_overflow=0,
            pool_timeout=settings.pool_acquire_timeout,
            pool_recycle=settings.pool_idle_timeout,
        )

    engine = create_engine(url, connect_args=connect_args, **kwargs)

    # Ensure SQLite enforces foreign keys
    if url.get_backend_name() == "sqlite":
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def _pool_snapshot(pool) -> dict:
    idle = pool.checkedin() if hasattr(pool, "checkedin") else 0
    in_use = pool.checkedout() if hasattr(pool, "checkedout") else 0
    return {"total": idle + in_use, "idle": idle, "waiting": getattr(pool, "waiting", 0)}


def _ping(engine: Engine) -> dict:
    start = time.perf_counter()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("database ping failed for %s: %s", engine.url.render_as_string(hide_password=True), exc)
        return {"healthy": False, "latency_ms": 0.0, "error": str(exc) or exc.__class__.__name__}
    latency = (time.perf_counter() - start) * 1000
    return {"healthy": True, "latency_ms": round(latency, 3), "error": None}


class ClusterPools:
    """A write pool (primary) and a read pool (replica).

    Both may point at the same database; with a single connection string
    the cluster degrades to single-node operation.
    """

    def __init__(self, primary: Engine, replica: Engine):
        self.primary = primary
        self.replica = replica
        self.PrimarySession = sessionmaker(autocommit=False, autoflush=False, bind=primary, future=True)
        self.ReplicaSession = sessionmaker(autocommit=False, autoflush=False, bind=replica, future=True)

    def check_health(self) -> dict:
        # Each pool is probed on its own; a failure is reported, never raised.
        return {"primary": _ping(self.primary), "replica": _ping(self.replica)}

    def connection_stats(self) -> dict:
        stats = {
            "primary": _pool_snapshot(self.primary.pool),
            "replica": _pool_snapshot(self.replica.pool),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        logger.info("database connection stats: %s", stats)
        return stats

    def close(self):
        for name, engine in (("primary", self.primary), ("replica", self.replica)):
            try:
                engine.dispose()
            except Exception:
                logger.exception("error closing %s database pool", name)
        logger.info("database connections closed")


def create_cluster(settings: Settings) -> ClusterPools:
    primary = build_engine(settings.primary_database_url, settings)
    if settings.replica_database_url == settings.primary_database_url:
        replica = primary
    else:
        replica = build_engine(settings.replica_database_url, settings)
    return ClusterPools(primary, replica)


cluster: Optional[ClusterPools] = None


def init_cluster(settings: Optional[Settings] = None) -> ClusterPools:
    global cluster
    if cluster is None:
        cluster = create_cluster(settings or get_settings())
    return cluster


def get_cluster() -> ClusterPools:
    return init_cluster()


def check_cluster_health() -> dict:
    return get_cluster().check_health()


def log_connection_stats() -> dict:
    return get_cluster().connection_stats()


def close_connections():
    global cluster
    if cluster is None:
        return
    try:
        cluster.close()
    except Exception:
        logger.exception("error closing database connections")
    finally:
        cluster = None


# Dependencies to get DB sessions per request
def get_primary_db():
    db = get_cluster().PrimarySession()
    try:
        yield db
    finally:
        db.close()


def get_replica_db():
    db = get_cluster().ReplicaSession()
    try:
        yield db
    finally:
        db.close()
