"""
auth/store.py -- SQLAlchemy Core persistence layer for admin users and roles.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_role are the mappers.
Flow and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL values.

  registration_token and reset_password_token are UNIQUE so a token resolves
  to at most one user. Both are cleared in the same UPDATE that consumes them,
  and the UPDATE is conditioned on the token still matching, so two
  concurrent consumptions cannot both succeed.

  create_first_admin() is a single INSERT ... SELECT ... WHERE NOT EXISTS
  statement. Two concurrent bootstrap requests cannot both create a user even
  if both passed the exists() pre-check.

Layer rule: no imports from api/.

advanced_settings table: single-row settings table (id=1 enforced by CHECK
constraint). INSERT OR IGNORE ensures the row always exists after creation.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    literal,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine

from auth.models import SUPER_ADMIN_CODE, RegistrationInfo, Role, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("firstname", String(255)),
    Column("lastname", String(255)),
    Column("username", String(255)),
    Column("hashed_password", Text),  # NULL until the invitee registers
    Column("is_active", Integer, nullable=False, server_default="0"),
    Column("blocked", Integer, nullable=False, server_default="0"),
    Column("registration_token", String(64), unique=True),
    Column("reset_password_token", String(64), unique=True),
    Column("reset_password_expires_at", String(32)),
    Column("prefered_language", String(20)),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("code", String(255), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

_DEFAULT_ROLES = (
    Role(name="Super Admin", code=SUPER_ADMIN_CODE, description="Super Admins can access and manage all features and settings."),
    Role(name="Editor", code="strapi-editor", description="Editors can manage and publish contents including those of other users."),
    Role(name="Author", code="strapi-author", description="Authors can manage the content they have created."),
)

# Columns a caller may write through create_user()/update_user().
_USER_FIELDS = (
    "email",
    "firstname",
    "lastname",
    "username",
    "hashed_password",
    "is_active",
    "blocked",
    "registration_token",
    "reset_password_token",
    "reset_password_expires_at",
    "prefered_language",
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite tweaks every store in auth/ needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_db_value(name: str, value):
    if name in ("is_active", "blocked"):
        return 1 if value else 0
    return value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for admin User and Role entities plus advanced settings.

    Usage:
        store = UserStore("sqlite:///:memory:")
        store.ensure_default_roles()
        user = store.create_user(User(email="a@x.com", is_active=True), role_ids=[1])
        store.close()
    """

    # Known keys for advanced_settings -- validated before any SQL write to
    # prevent injection via dynamic column names.
    _ADVANCED_SETTINGS_KEYS: set = {"multi_factor_authentication"}

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)
        self._ensure_advanced_settings()

    def _ensure_advanced_settings(self) -> None:
        """Create the advanced_settings table and seed its single row.

        The CHECK (id = 1) constraint enforces the single-row invariant at the
        DB level. INSERT OR IGNORE is idempotent -- safe to call on every startup.
        """
        with self.engine.connect() as conn:
            conn.execute(
                text(
                    """
                    CREATE TABLE IF NOT EXISTS advanced_settings (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        multi_factor_authentication INTEGER DEFAULT 0
                    )
                    """
                )
            )
            conn.execute(text("INSERT OR IGNORE INTO advanced_settings (id) VALUES (1)"))
            conn.commit()

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        """Return True if at least one admin user exists."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User, role_ids: list[int] | None = None) -> User:
        """Insert a new user, attach roles, and return the stored record.

        Raises sqlalchemy.exc.IntegrityError if the email (or a token) is
        already taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.insert().values(**self._user_values(user)))
            user_id = result.inserted_primary_key[0]
            self._attach_roles(conn, user_id, role_ids or [])
            conn.commit()
        return self.get_by_id(user_id)

    def create_first_admin(self, user: User, role_id: int) -> User | None:
        """Insert ``user`` only if the users table is empty.

        Returns the created user, or None if any user already existed at
        statement time.
        """
        values = self._user_values(user)
        columns = list(values)
        source = select(*[literal(values[c], type_=_users.c[c].type) for c in columns]).where(
            ~select(_users.c.id).exists()
        )
        with self.engine.connect() as conn:
            result = conn.execute(_users.insert().from_select(columns, source))
            if result.rowcount == 0:
                conn.rollback()
                return None
            user_id = conn.execute(select(_users.c.id).where(_users.c.email == user.email)).scalar_one()
            self._attach_roles(conn, user_id, [role_id])
            conn.commit()
        return self.get_by_id(user_id)

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            return self._load(conn, row)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, case-insensitively. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == email.lower())).fetchone()
            return self._load(conn, row)

    def update_user(self, user_id: int, **fields) -> bool:
        """Update writable fields on an existing user.

        Returns True if a row was updated, False if user_id was not found.
        Unknown field names raise ValueError.
        """
        unknown = set(fields) - set(_USER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        values = {k: _as_db_value(k, v) for k, v in fields.items()}
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def find_registration_info(self, registration_token: str) -> RegistrationInfo | None:
        """Return the public info of the invitation matching the token, if any."""
        if not registration_token:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_users.c.email, _users.c.firstname, _users.c.lastname).where(
                    _users.c.registration_token == registration_token
                )
            ).fetchone()
        if row is None:
            return None
        return RegistrationInfo(email=row.email, firstname=row.firstname, lastname=row.lastname)

    def register(
        self,
        registration_token: str,
        hashed_password: str,
        firstname: str | None,
        lastname: str | None,
    ) -> User | None:
        """Accept an invitation: set the password, activate, consume the token.

        Returns the updated user, or None if the token matches no invitation.
        """
        with self.engine.connect() as conn:
            user_id = conn.execute(
                select(_users.c.id).where(_users.c.registration_token == registration_token)
            ).scalar()
            if user_id is None:
                return None
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.registration_token == registration_token))
                .values(
                    hashed_password=hashed_password,
                    firstname=firstname,
                    lastname=lastname,
                    registration_token=None,
                    is_active=1,
                )
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def set_reset_password_token(self, user_id: int, token: str, expires_at: datetime) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(reset_password_token=token, reset_password_expires_at=expires_at.isoformat())
            )
            conn.commit()

    def reset_password(self, token: str, hashed_password: str) -> User | None:
        """Rotate the password of the active user holding an unexpired reset token.

        The token is cleared in the same statement. Returns the updated user,
        or None for an unknown, expired or already-used token.
        """
        if not token:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_users.c.id, _users.c.reset_password_expires_at).where(
                    (_users.c.reset_password_token == token) & (_users.c.is_active == 1)
                )
            ).fetchone()
            if row is None:
                return None
            if row.reset_password_expires_at:
                expires_at = datetime.fromisoformat(row.reset_password_expires_at)
                if expires_at <= datetime.now(timezone.utc):
                    return None
            result = conn.execute(
                _users.update()
                .where((_users.c.id == row.id) & (_users.c.reset_password_token == token))
                .values(hashed_password=hashed_password, reset_password_token=None, reset_password_expires_at=None)
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(row.id)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> Role:
        with self.engine.connect() as conn:
            result = conn.execute(
                _roles.insert().values(name=role.name, code=role.code, description=role.description)
            )
            conn.commit()
        return Role(id=result.inserted_primary_key[0], name=role.name, code=role.code, description=role.description)

    def get_role_by_code(self, code: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.code == code)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_super_admin_role(self) -> Role | None:
        return self.get_role_by_code(SUPER_ADMIN_CODE)

    def ensure_default_roles(self) -> None:
        """Seed the built-in roles that are missing. Idempotent."""
        for role in _DEFAULT_ROLES:
            if self.get_role_by_code(role.code) is None:
                self.create_role(Role(name=role.name, code=role.code, description=role.description))

    # ------------------------------------------------------------------
    # Advanced settings
    # ------------------------------------------------------------------

    def get_advanced_settings(self) -> dict:
        """Return the advanced_settings row as a dict with boolean values."""
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT multi_factor_authentication FROM advanced_settings WHERE id = 1")
            ).fetchone()
        if row is None:
            # Should never happen; _ensure_advanced_settings() seeds this row.
            return {"multi_factor_authentication": False}
        return {"multi_factor_authentication": bool(row[0])}

    def update_advanced_settings(self, **kwargs) -> None:
        """Update one or more advanced settings.

        Only keys in _ADVANCED_SETTINGS_KEYS are accepted. Unknown keys raise
        ValueError rather than being silently ignored.
        """
        unknown = set(kwargs.keys()) - self._ADVANCED_SETTINGS_KEYS
        if unknown:
            raise ValueError(f"Unknown advanced settings keys: {unknown!r}")
        if not kwargs:
            return
        # Build SET clause from validated keys only -- never raw user input
        set_clause = ", ".join(f"{k} = :{k}" for k in kwargs)
        params = {k: (1 if v else 0) for k, v in kwargs.items()}
        with self.engine.connect() as conn:
            conn.execute(text(f"UPDATE advanced_settings SET {set_clause} WHERE id = 1"), params)  # noqa: S608
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _user_values(user: User) -> dict:
        values = {name: _as_db_value(name, getattr(user, name)) for name in _USER_FIELDS}
        values["created_at"] = _now_iso()
        return values

    @staticmethod
    def _attach_roles(conn: Connection, user_id: int, role_ids: list[int]) -> None:
        for role_id in role_ids:
            conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))

    @staticmethod
    def _load(conn: Connection, row) -> User | None:
        if row is None:
            return None
        role_rows = conn.execute(
            _roles.select()
            .join(_user_roles, _user_roles.c.role_id == _roles.c.id)
            .where(_user_roles.c.user_id == row.id)
            .order_by(_roles.c.id)
        ).fetchall()
        return _row_to_user(row, [_row_to_role(r) for r in role_rows])


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, roles: list[Role]) -> User:
    return User(
        id=row.id,
        email=row.email,
        firstname=row.firstname,
        lastname=row.lastname,
        username=row.username,
        hashed_password=row.hashed_password,
        is_active=bool(row.is_active),
        blocked=bool(row.blocked),
        registration_token=row.registration_token,
        reset_password_token=row.reset_password_token,
        reset_password_expires_at=row.reset_password_expires_at,
        prefered_language=row.prefered_language,
        created_at=row.created_at,
        roles=roles,
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name, code=row.code, description=row.description)


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------

_PRIVATE_FIELDS = ("hashed_password", "registration_token", "reset_password_token", "reset_password_expires_at")


def sanitize_user(user: User) -> dict:
    """Return the public profile of a user: no password hash, no tokens."""
    data = asdict(user)
    for name in _PRIVATE_FIELDS:
        data.pop(name, None)
    return data


def is_super_admin(user: User) -> bool:
    return any(role.code == SUPER_ADMIN_CODE for role in user.roles)
