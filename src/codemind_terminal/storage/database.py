"""SQLite database management for command history."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from codemind_terminal.storage.models import Command, CommandRecord

logger = logging.getLogger(__name__)

_db: aiosqlite.Connection | None = None


async def init_db(db_path: str) -> None:
    """Initialize database and create tables."""
    global _db
    resolved = Path(db_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(resolved))
    _db.row_factory = aiosqlite.Row
    await _db.execute("PRAGMA journal_mode = WAL")

    await _db.execute("""
        CREATE TABLE IF NOT EXISTS commands (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            command_id TEXT NOT NULL,
            command TEXT NOT NULL,
            cwd TEXT NOT NULL,
            status TEXT NOT NULL
                CHECK(status IN ('completed', 'failed', 'stopped')),
            risk_level TEXT NOT NULL
                CHECK(risk_level IN ('safe', 'moderate', 'dangerous')),
            location TEXT DEFAULT 'background'
                CHECK(location IN ('background', 'terminal')),
            exit_code INTEGER,
            execution_time_ms INTEGER,
            output TEXT DEFAULT '',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    await _db.execute("CREATE INDEX IF NOT EXISTS idx_commands_created_at ON commands(created_at)")
    await _db.commit()
    logger.info("Database initialized: %s", resolved)


async def get_db() -> aiosqlite.Connection:
    """Get the database connection."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database closed")


async def save_command(command: Command, execution_time_ms: int) -> None:
    """Save a finished command to history. Unfinished commands are ignored."""
    if not command.is_terminal:
        logger.warning("Not saving command %s in state %s", command.id, command.status.value)
        return
    try:
        db = await get_db()
        await db.execute(
            """INSERT INTO commands
                   (command_id, command, cwd, status, risk_level, location, exit_code, execution_time_ms, output)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                command.id,
                command.literal_command,
                command.working_directory,
                command.status.value,
                command.risk_level.value,
                command.location.value,
                command.exit_code,
                execution_time_ms,
                "\n".join(command.lines()),
            ),
        )
        await db.commit()
    except Exception:
        logger.exception("Failed to save command history")


async def get_recent_commands(limit: int = 10) -> list[CommandRecord]:
    """Get recent command history, newest first."""
    db = await get_db()
    cursor = await db.execute(
        """SELECT id, command_id, command, cwd, status, risk_level, location, exit_code,
                  execution_time_ms, output, created_at
           FROM commands ORDER BY id DESC LIMIT ?""",
        (limit,),
    )
    rows = await cursor.fetchall()
    return [CommandRecord(**dict(row)) for row in rows]
