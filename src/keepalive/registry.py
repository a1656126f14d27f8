"""Project registry — SQLite-backed store of keepalive targets.

Single source of truth for which projects get pinged. The cycle runner
reads active projects from here and writes each ping outcome back; the
status reporter and the admin routes read and mutate it concurrently.
Every write is a single statement, so a record is never half-updated.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any

import yaml

from .errors import KeepaliveError, NotFoundError, ValidationError
from .models import KeepaliveProject, PingResult, utc_now

logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).parent.parent.parent / "data" / "keepalive.db"

# https://<project-ref>.supabase.co
PROJECT_URL_RE = re.compile(r"^https://[a-z0-9][a-z0-9-]*\.supabase\.co$", re.IGNORECASE)

UPDATABLE_FIELDS = ("name", "connection_url", "credential", "is_active")


def normalize_url(url: str) -> str:
    """Strip and validate a project URL, returning it without a trailing slash."""
    url = (url or "").strip().rstrip("/")
    if not url:
        raise ValidationError("Connection URL is required")
    if not PROJECT_URL_RE.match(url):
        raise ValidationError(
            f"Invalid project URL {url!r}. Must be https://<project>.supabase.co"
        )
    return url


def _required(value: str | None, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{label} is required")
    return value


class ProjectRegistry:
    """CRUD over the ``keepalive_projects`` table."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path) if db_path else DB_PATH
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._closed = False
        self._lock = threading.Lock()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._closed:
            raise KeepaliveError(f"Project registry {self._db_path} is closed")
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS keepalive_projects (
                    id                TEXT PRIMARY KEY,
                    name              TEXT NOT NULL,
                    connection_url    TEXT NOT NULL,
                    credential        TEXT NOT NULL,
                    is_active         INTEGER NOT NULL DEFAULT 1,
                    created_at        TEXT NOT NULL,
                    updated_at        TEXT NOT NULL,
                    last_ping_at      TEXT,
                    last_ping_success INTEGER,
                    last_ping_error   TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_keepalive_active
                    ON keepalive_projects (is_active, created_at);
            """)
            conn.commit()

    def _fetch(self, sql: str, params: tuple[Any, ...] = ()) -> list[KeepaliveProject]:
        with self._lock:
            rows = self._get_conn().execute(sql, params).fetchall()
        return [KeepaliveProject.from_row(dict(r)) for r in rows]

    # ── Reads ────────────────────────────────────────────────────────────

    def list(self) -> list[KeepaliveProject]:
        """All projects in creation order."""
        return self._fetch(
            "SELECT * FROM keepalive_projects ORDER BY created_at, rowid"
        )

    def list_active(self) -> list[KeepaliveProject]:
        """Projects included in the next ping cycle, in creation order."""
        return self._fetch(
            "SELECT * FROM keepalive_projects WHERE is_active = 1 "
            "ORDER BY created_at, rowid"
        )

    def get(self, project_id: str) -> KeepaliveProject:
        found = self._fetch("SELECT * FROM keepalive_projects WHERE id = ?", (project_id,))
        if not found:
            raise NotFoundError(project_id)
        return found[0]

    def count_active(self) -> int:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT COUNT(*) FROM keepalive_projects WHERE is_active = 1"
            ).fetchone()
        return int(row[0])

    # ── Mutations ────────────────────────────────────────────────────────

    def add(self, name: str, connection_url: str, credential: str) -> KeepaliveProject:
        """Register a new project. Raises ``ValidationError`` before writing anything."""
        project = KeepaliveProject(
            name=_required(name, "Name"),
            connection_url=normalize_url(connection_url),
            credential=_required(credential, "Credential"),
        )
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT INTO keepalive_projects "
                "(id, name, connection_url, credential, is_active, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    project.id, project.name, project.connection_url, project.credential,
                    int(project.is_active), project.created_at, project.updated_at,
                ),
            )
            conn.commit()
        logger.info("Added keepalive project '%s' (%s)", project.name, project.id)
        return project

    def update(self, project_id: str, **fields: Any) -> KeepaliveProject:
        """Apply a partial update.

        Accepts ``name``, ``connection_url``, ``credential`` and ``is_active``.
        Fields passed as ``None`` are left untouched. Deactivating a project
        keeps its ping history.
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

        updates: dict[str, Any] = {}
        if fields.get("name") is not None:
            updates["name"] = _required(fields["name"], "Name")
        if fields.get("connection_url") is not None:
            updates["connection_url"] = normalize_url(fields["connection_url"])
        if fields.get("credential") is not None:
            updates["credential"] = _required(fields["credential"], "Credential")
        if fields.get("is_active") is not None:
            if not isinstance(fields["is_active"], bool):
                raise ValidationError("is_active must be a boolean")
            updates["is_active"] = int(fields["is_active"])

        updates["updated_at"] = utc_now()
        set_clause = ", ".join(f"{k} = :{k}" for k in updates)
        updates["id"] = project_id

        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(
                f"UPDATE keepalive_projects SET {set_clause} WHERE id = :id", updates
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(project_id)
        return self.get(project_id)

    def delete(self, project_id: str) -> None:
        """Remove a project and its ping history.

        Deleting an id that is not (or no longer) registered raises
        ``NotFoundError``; callers that want idempotent deletes catch it.
        """
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute("DELETE FROM keepalive_projects WHERE id = ?", (project_id,))
            conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(project_id)
        logger.info("Deleted keepalive project %s", project_id)

    def record_ping(self, result: PingResult) -> None:
        """Fold a ping outcome into its project row."""
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(
                "UPDATE keepalive_projects SET last_ping_at = ?, last_ping_success = ?, "
                "last_ping_error = ?, updated_at = ? WHERE id = ?",
                (
                    result.timestamp, int(result.success), result.error,
                    utc_now(), result.project_id,
                ),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(result.project_id)

    # ── Seeding ──────────────────────────────────────────────────────────

    def seed_from_yaml(self, path: Path | str) -> list[KeepaliveProject]:
        """Import projects from a YAML file, skipping URLs already registered.

        Expected shape::

            projects:
              - name: Photos DB
                connection_url: https://abcd.supabase.co
                credential: <service key>
                is_active: true
        """
        path = Path(path)
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ValidationError(
                f"Seed file {path} must be a mapping with a 'projects' list, got {type(raw).__name__}"
            )

        known = {p.connection_url for p in self.list()}
        added: list[KeepaliveProject] = []
        for entry in raw.get("projects") or []:
            try:
                url = normalize_url(entry.get("connection_url", ""))
                if url in known:
                    logger.debug("Seed entry already registered: %s", url)
                    continue
                project = self.add(entry.get("name", ""), url, entry.get("credential", ""))
                if entry.get("is_active") is False:
                    project = self.update(project.id, is_active=False)
            except (ValidationError, AttributeError) as e:
                logger.warning("Skipping malformed seed entry: %s", e)
                continue
            known.add(url)
            added.append(project)

        logger.info("Seeded %d keepalive project(s) from %s", len(added), path)
        return added

    def close(self) -> None:
        """Close the connection. Any later registry call raises ``KeepaliveError``."""
        with self._lock:
            self._closed = True
            if self._conn:
                self._conn.close()
                self._conn = None
