"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper (same as registry/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and
dependency code never touches SQL directly.

Reconciliation:
  Sign-in is a single INSERT ... ON CONFLICT (gh_id) DO UPDATE. There is no
  check-then-insert window: two concurrent callbacks for the same GitHub
  account both land on the one row the UNIQUE(gh_id) constraint allows. The
  conflict branch refreshes profile fields and the GitHub token but never
  touches api_token, which is only generated for the insert branch.

  api_token is UNIQUE as well. A collision on a freshly generated token
  surfaces as IntegrityError, which is retried with a new token a bounded
  number of times before giving up with StoreError.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or registry/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.tokens import generate_api_token
from core.config import get_settings
from core.errors import ConflictError, NotFoundError, StoreError

logger = logging.getLogger("pkgfeed.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("gh_id", Integer, nullable=False, unique=True),
    Column("gh_login", String(255), nullable=False, index=True),  # not unique: logins can be renamed
    Column("email", String(255)),
    Column("gh_avatar", Text),
    Column("name", String(255)),
    Column("gh_access_token", Text, nullable=False),
    Column("api_token", String(64), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

# Dialect-specific insert constructs that support ON CONFLICT.
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_token_collision(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: users.api_token"
    # PostgreSQL: duplicate key value violates unique constraint "users_api_token_key"
    return "api_token" in str(exc.orig)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        user = store.reconcile(1, "octocat", None, None, None, "gho_...")
        same = store.find_by_api_token(user.api_token)
        store.close()
    """

    def __init__(self, db_url: str | None = None, token_retries: int | None = None) -> None:
        settings = get_settings()
        db_url = db_url or settings.auth_db_url
        self.token_retries = token_retries if token_retries is not None else settings.api_token_retries
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

        insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
        if insert is None:
            raise ValueError(f"Unsupported database dialect for upserts: {self.engine.dialect.name!r}")
        self._insert = insert

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(
        self,
        gh_id: int,
        login: str,
        email: str | None,
        avatar: str | None,
        name: str | None,
        gh_access_token: str,
    ) -> User:
        """Create the user for gh_id, or refresh it if it already exists.

        Profile fields and the GitHub token are always written, even when
        unchanged, so calling this twice with the same arguments returns
        two equal snapshots. id, gh_id and api_token are preserved on update.

        Raises StoreError if no unique API token could be generated within
        token_retries attempts.
        """
        for attempt in range(1, self.token_retries + 1):
            try:
                return self._upsert(gh_id, login, email, avatar, name, gh_access_token, generate_api_token())
            except ConflictError:
                logger.warning("API token collision reconciling gh_id=%s (attempt %d)", gh_id, attempt)
        raise StoreError("Could not generate a unique API token.")

    def _upsert(
        self,
        gh_id: int,
        login: str,
        email: str | None,
        avatar: str | None,
        name: str | None,
        gh_access_token: str,
        api_token: str,
    ) -> User:
        stmt = self._insert(_users).values(
            gh_id=gh_id,
            gh_login=login,
            email=email,
            gh_avatar=avatar,
            name=name,
            gh_access_token=gh_access_token,
            api_token=api_token,
            created_at=_now_iso(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[_users.c.gh_id],
            set_={
                "gh_login": stmt.excluded.gh_login,
                "email": stmt.excluded.email,
                "gh_avatar": stmt.excluded.gh_avatar,
                "name": stmt.excluded.name,
                "gh_access_token": stmt.excluded.gh_access_token,
            },
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
                row = conn.execute(_users.select().where(_users.c.gh_id == gh_id)).one()
        except IntegrityError as exc:
            if not _is_token_collision(exc):
                raise
            raise ConflictError("API token collision.") from exc
        user = _row_to_user(row)
        if user.api_token == api_token:
            logger.info("Created user id=%d for gh_login=%r", user.id, login)
        return user

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_api_token(self, api_token: str) -> User | None:
        """Look up a user by API token. O(1) via the UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.api_token == api_token)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_login(self, login: str) -> User | None:
        """Look up a user by GitHub login.

        Logins are not unique across renames: if an old account gave up a
        login that a newer account now holds, the most recently created
        record wins.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(_users.c.gh_login == login).order_by(_users.c.id.desc()).limit(1)
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User:
        user = self.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def find_by_api_token(self, api_token: str) -> User:
        user = self.get_by_api_token(api_token)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def find_by_login(self, login: str) -> User:
        user = self.get_by_login(login)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    # ------------------------------------------------------------------
    # Token rotation
    # ------------------------------------------------------------------

    def rotate_api_token(self, user_id: int) -> str:
        """Replace the user's API token and return the new value.

        The old token stops authenticating as soon as the UPDATE commits;
        there is no overlap window. Raises NotFoundError if user_id does not
        exist and StoreError if every generated token collided.
        """
        for attempt in range(1, self.token_retries + 1):
            api_token = generate_api_token()
            try:
                with self.engine.begin() as conn:
                    result = conn.execute(
                        _users.update().where(_users.c.id == user_id).values(api_token=api_token)
                    )
            except IntegrityError as exc:
                if not _is_token_collision(exc):
                    raise
                logger.warning("API token collision rotating user_id=%d (attempt %d)", user_id, attempt)
                continue
            if result.rowcount == 0:
                raise NotFoundError("User not found.")
            logger.info("Rotated API token for user_id=%d", user_id)
            return api_token
        raise StoreError("Could not generate a unique API token.")

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        gh_id=row.gh_id,
        gh_login=row.gh_login,
        email=row.email,
        gh_avatar=row.gh_avatar,
        name=row.name,
        gh_access_token=row.gh_access_token,
        api_token=row.api_token,
        created_at=row.created_at,
    )
