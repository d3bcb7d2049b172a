"""Persistence adapter: one interface, a local variant for guests and a relational one."""

import json
import logging
import os
import re
import sqlite3
import uuid
from abc import ABC, abstractmethod

import aiofiles

from lecture_capture.config import settings
from lecture_capture.database import get_async_conn
from lecture_capture.errors import PersistenceError, PersistenceSetupError
from lecture_capture.models import GUEST_USER_ID, Flashcard, Lecture, QuizQuestion

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://\S+")


class LectureStore(ABC):
    """Operations every persistence backend provides."""

    @abstractmethod
    async def list_lectures(self, user_id: str) -> list[Lecture]:
        """All lectures owned by *user_id*, newest first by date."""

    @abstractmethod
    async def save(self, lecture: Lecture) -> str:
        """Insert *lecture* (whose id must be empty) and return the generated id."""

    @abstractmethod
    async def update_flashcards(self, lecture_id: str, user_id: str, flashcards: list[Flashcard]) -> None:
        ...

    @abstractmethod
    async def update_quiz(self, lecture_id: str, user_id: str, questions: list[QuizQuestion]) -> None:
        ...

    @abstractmethod
    async def delete(self, lecture_id: str, user_id: str) -> None:
        """Remove a lecture.  Unknown ids are a no-op."""


def _check_new(lecture: Lecture) -> None:
    if lecture.id:
        raise PersistenceError(f"Lecture {lecture.id} is already saved")


# ---------------------------------------------------------------------------
# Local (guest) variant
# ---------------------------------------------------------------------------


class LocalLectureStore(LectureStore):
    """A single JSON document on this device, like a browser's local storage."""

    def __init__(self, path: str | None = None) -> None:
        self.path = path or settings.guest_store_path

    async def _read(self) -> list[dict]:
        if not os.path.exists(self.path):
            return []
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                data = json.loads(await f.read() or "[]")
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Local storage error reading %s: %s", self.path, exc)
            raise PersistenceError("Could not read locally saved lectures.") from exc
        if not isinstance(data, list):
            raise PersistenceError("Locally saved lectures are corrupted.")
        return data

    async def _write(self, rows: list[dict]) -> None:
        directory = os.path.dirname(self.path)
        tmp_path = f"{self.path}.tmp"
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(rows, indent=2))
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error("Local storage error writing %s: %s", self.path, exc)
            raise PersistenceError("Could not save lectures locally.") from exc

    async def list_lectures(self, user_id: str) -> list[Lecture]:
        rows = await self._read()
        lectures = [Lecture.from_dict(r) for r in rows if r.get("userId") == user_id]
        lectures.sort(key=lambda lec: lec.date, reverse=True)
        return lectures

    async def save(self, lecture: Lecture) -> str:
        _check_new(lecture)
        lecture_id = uuid.uuid4().hex[:9]
        rows = await self._read()
        rows.insert(0, lecture.with_id(lecture_id).to_dict())
        await self._write(rows)
        return lecture_id

    async def _update(self, lecture_id: str, user_id: str, field: str, value: list[dict]) -> None:
        rows = await self._read()
        for row in rows:
            if row.get("id") == lecture_id and row.get("userId") == user_id:
                row[field] = value
        await self._write(rows)

    async def update_flashcards(self, lecture_id: str, user_id: str, flashcards: list[Flashcard]) -> None:
        await self._update(lecture_id, user_id, "flashcards", [c.to_dict() for c in flashcards])

    async def update_quiz(self, lecture_id: str, user_id: str, questions: list[QuizQuestion]) -> None:
        await self._update(lecture_id, user_id, "quizData", [q.to_dict() for q in questions])

    async def delete(self, lecture_id: str, user_id: str) -> None:
        rows = await self._read()
        kept = [r for r in rows if not (r.get("id") == lecture_id and r.get("userId") == user_id)]
        if len(kept) != len(rows):
            await self._write(kept)


# ---------------------------------------------------------------------------
# Relational (authenticated) variant
# ---------------------------------------------------------------------------


def _dumps(value) -> str | None:
    return json.dumps(value) if value is not None else None


def _loads(value: str | None):
    return json.loads(value) if value is not None else None


def _row_to_lecture(row) -> Lecture:
    return Lecture.from_dict({
        "id": str(row["id"]),
        "userId": row["user_id"],
        "title": row["title"],
        "date": row["date"],
        "transcript": row["transcript"],
        "summary": _loads(row["summary_json"]),
        "cornellNotes": _loads(row["cornell_notes_json"]),
        "flashcards": _loads(row["flashcards_json"]),
        "quizData": _loads(row["quiz_json"]),
        "confusionMarkers": _loads(row["confusion_markers_json"]),
        "files": _loads(row["files_json"]) or [],
    })


class RemoteLectureStore(LectureStore):
    """Lectures table keyed by user id, reached through aiosqlite."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or settings.database_path

    def _translate(self, exc: sqlite3.Error, action: str) -> PersistenceError:
        message = str(exc)
        logger.error("Database %s error: %s", action, message)
        if "no such table" in message:
            match = _URL_RE.search(message)
            return PersistenceSetupError(
                "The lectures table has not been set up. Initialize the database, then retry.",
                setup_url=match.group(0) if match else settings.persistence_setup_url,
            )
        return PersistenceError(f"Failed to {action} lectures: {message}")

    async def list_lectures(self, user_id: str) -> list[Lecture]:
        conn = await get_async_conn(self.db_path)
        try:
            rows = await conn.execute(
                "SELECT * FROM lectures WHERE user_id = ? ORDER BY date DESC, id DESC",
                (user_id,),
            )
            return [_row_to_lecture(row) for row in await rows.fetchall()]
        except sqlite3.Error as exc:
            raise self._translate(exc, "load") from exc
        finally:
            await conn.close()

    async def save(self, lecture: Lecture) -> str:
        _check_new(lecture)
        data = lecture.to_dict()
        conn = await get_async_conn(self.db_path)
        try:
            cursor = await conn.execute(
                """INSERT INTO lectures
                   (user_id, title, date, transcript, summary_json, cornell_notes_json,
                    flashcards_json, quiz_json, confusion_markers_json, files_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    lecture.user_id,
                    lecture.title,
                    lecture.date,
                    lecture.transcript,
                    _dumps(data["summary"]),
                    _dumps(data["cornellNotes"]),
                    _dumps(data["flashcards"]),
                    _dumps(data["quizData"]),
                    _dumps(data["confusionMarkers"]),
                    _dumps(data["files"]),
                ),
            )
            await conn.commit()
            return str(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise self._translate(exc, "save") from exc
        finally:
            await conn.close()

    async def _update(self, lecture_id: str, user_id: str, column: str, value: list[dict]) -> None:
        conn = await get_async_conn(self.db_path)
        try:
            await conn.execute(
                f"UPDATE lectures SET {column} = ? WHERE id = ? AND user_id = ?",
                (_dumps(value), lecture_id, user_id),
            )
            await conn.commit()
        except sqlite3.Error as exc:
            raise self._translate(exc, "update") from exc
        finally:
            await conn.close()

    async def update_flashcards(self, lecture_id: str, user_id: str, flashcards: list[Flashcard]) -> None:
        await self._update(lecture_id, user_id, "flashcards_json", [c.to_dict() for c in flashcards])

    async def update_quiz(self, lecture_id: str, user_id: str, questions: list[QuizQuestion]) -> None:
        await self._update(lecture_id, user_id, "quiz_json", [q.to_dict() for q in questions])

    async def delete(self, lecture_id: str, user_id: str) -> None:
        conn = await get_async_conn(self.db_path)
        try:
            await conn.execute(
                "DELETE FROM lectures WHERE id = ? AND user_id = ?", (lecture_id, user_id)
            )
            await conn.commit()
        except sqlite3.Error as exc:
            raise self._translate(exc, "delete") from exc
        finally:
            await conn.close()


def store_for_user(user_id: str) -> LectureStore:
    """Guests keep lectures on this device; everyone else uses the database."""
    if user_id == GUEST_USER_ID:
        return LocalLectureStore()
    return RemoteLectureStore()
