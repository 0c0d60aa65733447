"""
auth/store.py -- SQLAlchemy Core persistence layer for users and roles.

Pattern: Repository + Data Mapper. UserStore is the repository (the identity
directory the auth service talks to); _row_to_user / _row_to_role are the
mappers. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Username and email are unique among non-deleted rows only. That is a pair
  of partial unique indexes (WHERE deleted_at IS NULL), supported by both
  SQLite and PostgreSQL, so a soft-deleted account does not block its email
  from being registered again.

Reads:
  Every lookup excludes soft-deleted rows and LEFT JOINs roles, so a user
  comes back with its Role value object already resolved. find_by_id() does
  not select password_hash -- it serves post-authentication reads only.

Failures:
  A database error on any call surfaces immediately as
  DirectoryUnavailableError. There is no retry. An IntegrityError from
  create() means either the role vanished (UnknownRoleError) or a concurrent
  registration won the race for the same email or username
  (DuplicateUserError).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DirectoryUnavailableError, DuplicateUserError, UnknownRoleError
from auth.models import NewUser, Role, User

logger = logging.getLogger("communityauth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("role_name", String(50), nullable=False, unique=True),
    Column("description", Text),
    Column("permissions", JSON, nullable=False, default=list),
)

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(100), nullable=False),
    Column("email", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("municipality_id", Integer),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("phone", String(30)),
    Column("profile_image_url", Text),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
)

Index(
    "uq_users_username_live",
    _users.c.username,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)
Index(
    "uq_users_email_live",
    _users.c.email,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)

# Seeded on startup. Role 5 (viewer) is the registration default.
DEFAULT_ROLES: tuple[Role, ...] = (
    Role(1, "admin", ("*",)),
    Role(2, "manager", ("municipalities.read", "municipalities.write", "clients.read", "clients.write",
                        "invoices.read", "invoices.write", "routers.read", "routers.write")),
    Role(3, "operator", ("clients.read", "clients.write", "routers.read", "routers.write", "cutoffs.write")),
    Role(4, "accountant", ("clients.read", "invoices.read", "invoices.write", "payments.read", "payments.write")),
    Role(5, "viewer", ("municipalities.read", "clients.read", "invoices.read", "routers.read")),
)

# Columns returned on every joined read. password_hash is added per query.
_PROFILE_COLUMNS = (
    _users.c.id,
    _users.c.username,
    _users.c.email,
    _users.c.role_id,
    _users.c.municipality_id,
    _users.c.first_name,
    _users.c.last_name,
    _users.c.phone,
    _users.c.profile_image_url,
    _users.c.is_active,
    _users.c.email_verified,
    _users.c.last_login,
    _users.c.created_at,
    _users.c.updated_at,
    _users.c.deleted_at,
    _roles.c.role_name,
    _roles.c.permissions,
)

# Fields update_user() accepts. Anything else is a programming error.
_UPDATABLE_FIELDS = frozenset(
    {"role_id", "municipality_id", "first_name", "last_name", "phone", "profile_image_url",
     "is_active", "email_verified", "password_hash"}
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _joined_select(*extra_columns):
    return (
        select(*_PROFILE_COLUMNS, *extra_columns)
        .select_from(_users.outerjoin(_roles, _users.c.role_id == _roles.c.id))
        .where(_users.c.deleted_at.is_(None))
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Role entities.

    Usage:
        store = UserStore("sqlite:///communityauth.db")
        user = store.create(NewUser(username="ana", email="ana@example.org",
                                    password_hash=hasher.hash("secret123"), role_id=5))
        full = store.find_by_id(user.id)
        store.close()
    """

    def __init__(self, db_url: str, pool_size: int = 20, pool_timeout: int = 2) -> None:
        connect_args: dict = {}
        engine_kwargs: dict = {"pool_pre_ping": True}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        else:
            engine_kwargs["pool_size"] = pool_size
            engine_kwargs["pool_timeout"] = pool_timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        with self._connect() as conn:
            _metadata.create_all(conn)
            conn.commit()
        self._ensure_default_roles()

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Yield a connection; translate database faults into DirectoryUnavailableError."""
        try:
            with self.engine.connect() as conn:
                yield conn
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("User store query failed: %s", exc.__class__.__name__)
            raise DirectoryUnavailableError() from exc

    def _ensure_default_roles(self) -> None:
        """Insert any of DEFAULT_ROLES that are missing. Idempotent across restarts."""
        with self._connect() as conn:
            existing = set(conn.execute(select(_roles.c.id)).scalars())
            missing = [r for r in DEFAULT_ROLES if r.id not in existing]
            if missing:
                conn.execute(
                    _roles.insert(),
                    [{"id": r.id, "role_name": r.name, "permissions": list(r.permissions)} for r in missing],
                )
                conn.commit()
                logger.info("Seeded %d default role(s)", len(missing))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> User | None:
        """Exact-match (case-sensitive) email lookup, including password_hash."""
        with self._connect() as conn:
            row = conn.execute(_joined_select(_users.c.password_hash).where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_username(self, username: str) -> User | None:
        """Exact-match (case-sensitive) username lookup, including password_hash."""
        with self._connect() as conn:
            row = conn.execute(
                _joined_select(_users.c.password_hash).where(_users.c.username == username)
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        """Primary-key lookup. password_hash is not selected on this path."""
        with self._connect() as conn:
            row = conn.execute(_joined_select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                select(_users.c.id).where((_users.c.email == email) & _users.c.deleted_at.is_(None)).limit(1)
            ).fetchone()
        return row is not None

    def username_exists(self, username: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                select(_users.c.id).where((_users.c.username == username) & _users.c.deleted_at.is_(None)).limit(1)
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, new_user: NewUser) -> User:
        """Insert an active user and return the minimal stored record.

        The returned User has no role resolved -- callers that need role_name
        or permissions must re-fetch with find_by_id().

        Raises UnknownRoleError if role_id names no role, DuplicateUserError if
        the insert violates a uniqueness index.
        """
        now = _now_iso()
        try:
            with self._connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=new_user.username,
                        email=new_user.email,
                        password_hash=new_user.password_hash,
                        role_id=new_user.role_id,
                        municipality_id=new_user.municipality_id,
                        first_name=new_user.first_name,
                        last_name=new_user.last_name,
                        phone=new_user.phone,
                        is_active=True,
                        email_verified=False,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            # The role may have been removed after the caller checked it.
            if self.get_role(new_user.role_id) is None:
                raise UnknownRoleError() from exc
            raise DuplicateUserError() from exc
        return User(
            id=result.inserted_primary_key[0],
            username=new_user.username,
            email=new_user.email,
            role_id=new_user.role_id,
            municipality_id=new_user.municipality_id,
            first_name=new_user.first_name,
            last_name=new_user.last_name,
            phone=new_user.phone,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login."""
        with self._connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on a non-deleted user.

        Accepted fields are listed in _UPDATABLE_FIELDS; unknown keys raise
        ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        fields["updated_at"] = _now_iso()
        with self._connect() as conn:
            result = conn.execute(
                _users.update().where((_users.c.id == user_id) & _users.c.deleted_at.is_(None)).values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    def soft_delete(self, user_id: int) -> bool:
        """Mark a user deleted. The row stays; every lookup stops seeing it."""
        now = _now_iso()
        with self._connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & _users.c.deleted_at.is_(None))
                .values(deleted_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def get_role(self, role_id: int) -> Role | None:
        with self._connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        with self._connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.id)).fetchall()
        return [_row_to_role(r) for r in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._connect() as conn:
                conn.execute(text("SELECT 1"))
        except DirectoryUnavailableError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.role_name, permissions=tuple(row.permissions or ()))


def _row_to_user(row) -> User:
    # LEFT JOIN: a user whose role row is missing comes back with role=None.
    role = None
    if row.role_name is not None:
        role = Role(id=row.role_id, name=row.role_name, permissions=tuple(row.permissions or ()))
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=getattr(row, "password_hash", None),
        role_id=row.role_id,
        role=role,
        municipality_id=row.municipality_id,
        first_name=row.first_name,
        last_name=row.last_name,
        phone=row.phone,
        profile_image_url=row.profile_image_url,
        is_active=bool(row.is_active),
        email_verified=bool(row.email_verified),
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )
