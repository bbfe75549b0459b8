import aiosqlite
from contextlib import asynccontextmanager

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS generated_messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    content TEXT NOT NULL,
    model TEXT NOT NULL,
    tokens_used INTEGER NOT NULL DEFAULT 0 CHECK(tokens_used >= 0),
    latency_ms INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

_db_path: str = ""


def set_db_path(path: str):
    global _db_path
    _db_path = path


@asynccontextmanager
async def get_db():
    """Yield an aiosqlite connection in WAL mode."""
    db = await aiosqlite.connect(_db_path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    try:
        yield db
    finally:
        await db.close()


async def init_db():
    """Create all tables if they don't exist."""
    async with get_db() as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()
