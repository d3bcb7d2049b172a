import aiosqlite

from lecture_capture.config import settings

CREATE_LECTURES = """
CREATE TABLE IF NOT EXISTS lectures (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    date TEXT NOT NULL,
    transcript TEXT NOT NULL,
    summary_json TEXT NOT NULL,
    cornell_notes_json TEXT,
    flashcards_json TEXT,
    quiz_json TEXT,
    confusion_markers_json TEXT,
    files_json TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_LECTURES_USER_DATE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_lectures_user_date ON lectures (user_id, date DESC)
"""

_DDL = [CREATE_LECTURES, CREATE_LECTURES_USER_DATE_INDEX]


async def init_db(db_path: str | None = None) -> None:
    """Create all tables. Called once at server startup via FastAPI lifespan."""
    async with aiosqlite.connect(db_path or settings.database_path) as db:
        for stmt in _DDL:
            await db.execute(stmt)
        await db.commit()


async def get_async_conn(db_path: str | None = None) -> aiosqlite.Connection:
    """Async connection with rows addressable by column name."""
    conn = await aiosqlite.connect(db_path or settings.database_path)
    await conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = aiosqlite.Row
    return conn
