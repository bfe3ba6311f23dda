"""
registry/store.py -- SQLAlchemy-backed persistence for packages, follows, and the update feed.

Uses SQLAlchemy Core (not ORM) so the dataclasses in registry/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. RegistryStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Follow edges have set semantics: the (user_id, package_id) primary key
allows one edge per pair, follow() is INSERT ... ON CONFLICT DO NOTHING and
unfollow() is a plain DELETE. Neither fails when the edge is already in the
requested state.

The update feed is a live join on every call (no caching), so an unfollow is
visible on the very next page fetch.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = RegistryStore()
    pkg_id = store.create_package(Package(name="serde"))
    store.create_version(Version(package_id=pkg_id, num="1.0.0"))
    store.follow(user_id, pkg_id)
    page = store.updates_for(user_id, Pagination.from_params(page=1, per_page=10))
    store.close()
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.errors import NotFoundError, ValidationError
from registry.models import FeedPage, Package, Version, VersionSummary
from registry.pagination import Pagination

logger = logging.getLogger("pkgfeed.registry.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_packages = Table(
    "packages",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(64), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

_versions = Table(
    "versions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("package_id", Integer, nullable=False, index=True),
    Column("num", String(64), nullable=False),
    Column("created_at", String(32), nullable=False),  # publish time, ISO 8601 UTC
    Column("yanked", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    UniqueConstraint("package_id", "num", name="uq_package_version"),
)

_follows = Table(
    "follows",
    metadata,
    Column("user_id", Integer, nullable=False),
    Column("package_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    PrimaryKeyConstraint("user_id", "package_id", name="pk_follows"),
)

_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _to_utc_iso(value: str) -> str:
    """Normalise an ISO 8601 timestamp to fixed-width UTC.

    Feed ordering compares created_at as text, which is only chronological
    when every row uses the same offset and precision. Naive timestamps are
    taken to be UTC.
    """
    try:
        stamp = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError("created_at", f"not an ISO 8601 timestamp: {value!r}") from exc
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RegistryStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().registry_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # The same pooled connection may be handed to different threads
            # of the ASGI server's worker pool.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

        insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
        if insert is None:
            raise ValueError(f"Unsupported database dialect for upserts: {self.engine.dialect.name!r}")
        self._insert = insert

    # ------------------------------------------------------------------
    # Packages and versions
    # ------------------------------------------------------------------

    def create_package(self, package: Package) -> int:
        """Insert a package and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the name is already taken.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_packages.insert().values(name=package.name, created_at=_now_iso()))
            return result.inserted_primary_key[0]

    def get_package_by_name(self, name: str) -> Optional[Package]:
        """Exact, case-sensitive name lookup. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_packages.select().where(_packages.c.name == name)).fetchone()
        return _row_to_package(row) if row is not None else None

    def find_package_by_name(self, name: str) -> Package:
        package = self.get_package_by_name(name)
        if package is None:
            raise NotFoundError("Package not found.", detail=name)
        return package

    def create_version(self, version: Version) -> int:
        """Record a published version and return its ID.

        created_at defaults to now; a supplied timestamp is converted to UTC
        first. Raises ValidationError for an unparseable timestamp and
        sqlalchemy.exc.IntegrityError if (package_id, num) already exists.
        """
        created_at = _to_utc_iso(version.created_at) if version.created_at else _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _versions.insert().values(
                    package_id=version.package_id,
                    num=version.num,
                    created_at=created_at,
                    yanked=1 if version.yanked else 0,
                )
            )
            return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Follow edges
    # ------------------------------------------------------------------

    def follow(self, user_id: int, package_id: int) -> None:
        """Add the (user, package) edge. A no-op if it already exists."""
        stmt = (
            self._insert(_follows)
            .values(user_id=user_id, package_id=package_id, created_at=_now_iso())
            .on_conflict_do_nothing(index_elements=[_follows.c.user_id, _follows.c.package_id])
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
        logger.debug("user_id=%d follows package_id=%d", user_id, package_id)

    def unfollow(self, user_id: int, package_id: int) -> None:
        """Remove the (user, package) edge. A no-op if it does not exist."""
        with self.engine.begin() as conn:
            conn.execute(
                _follows.delete().where((_follows.c.user_id == user_id) & (_follows.c.package_id == package_id))
            )
        logger.debug("user_id=%d unfollowed package_id=%d", user_id, package_id)

    def is_following(self, user_id: int, package_id: int) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_follows.c.user_id).where(
                    (_follows.c.user_id == user_id) & (_follows.c.package_id == package_id)
                )
            ).fetchone()
        return row is not None

    def count_follows(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            return (
                conn.execute(select(func.count()).select_from(_follows).where(_follows.c.user_id == user_id)).scalar()
                or 0
            )

    # ------------------------------------------------------------------
    # Update feed
    # ------------------------------------------------------------------

    def updates_for(self, user_id: int, pagination: Pagination) -> FeedPage:
        """Return one page of versions of the packages user_id follows.

        Newest first by publish time; version id breaks ties so the order is
        the same on every call. Fetches pagination.limit rows (one page plus
        a lookahead row) and reports more=True when the lookahead row exists.
        """
        query = (
            select(
                _versions.c.id,
                _packages.c.name.label("package"),
                _versions.c.num,
                _versions.c.created_at,
                _versions.c.yanked,
            )
            .select_from(
                _versions.join(_follows, _follows.c.package_id == _versions.c.package_id).join(
                    _packages, _packages.c.id == _versions.c.package_id
                )
            )
            .where(_follows.c.user_id == user_id)
            .order_by(_versions.c.created_at.desc(), _versions.c.id.desc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        page_rows, more = pagination.split(rows)
        return FeedPage(versions=[_row_to_summary(r) for r in page_rows], more=more)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_package(row) -> Package:
    return Package(id=row.id, name=row.name, created_at=row.created_at)


def _row_to_summary(row) -> VersionSummary:
    return VersionSummary(
        id=row.id,
        package=row.package,
        num=row.num,
        created_at=row.created_at,
        yanked=bool(row.yanked),
    )
