"""SQLite database initialization and CRUD operations."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from config.exceptions import DatabaseError
from models.book import Book, BookSettings
from models.chapter import Chapter, Section
from models.enums import (
    BookStatus, ChapterStatus, GenerationStep, RevisionPriority, RevisionStatus,
    RevisionTriggerType, SectionStatus,
)
from models.quality import RevisionTask
from models.story_bible import QualityPlan, ResearchData, StoryBible

logger = logging.getLogger(__name__)

# SQL for creating all tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL DEFAULT '',
    prompt TEXT NOT NULL DEFAULT '',
    settings TEXT NOT NULL DEFAULT '{}',
    tier TEXT DEFAULT 'free',
    status TEXT DEFAULT 'planning',
    generation_step TEXT DEFAULT 'prompt',
    back_cover TEXT,
    error_message TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS story_bibles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER NOT NULL UNIQUE REFERENCES books(id),
    bible TEXT NOT NULL,
    quality_plan TEXT,
    research TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER NOT NULL REFERENCES books(id),
    chapter_number INTEGER NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    summary TEXT DEFAULT '',
    word_target INTEGER DEFAULT 0,
    content TEXT,
    word_count INTEGER DEFAULT 0,
    status TEXT DEFAULT 'planned',
    consistency_score REAL,
    quality_score REAL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chapter_id INTEGER NOT NULL REFERENCES chapters(id) ON DELETE CASCADE,
    section_number INTEGER NOT NULL,
    title TEXT DEFAULT '',
    word_target INTEGER DEFAULT 0,
    content TEXT,
    word_count INTEGER DEFAULT 0,
    status TEXT DEFAULT 'planned',
    scene_context TEXT,
    model TEXT,
    tokens_used INTEGER DEFAULT 0,
    consistency_score REAL,
    quality_score REAL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS revision_tasks (
    id TEXT PRIMARY KEY,
    book_id INTEGER NOT NULL,
    chapter_number INTEGER NOT NULL,
    trigger TEXT NOT NULL,
    priority TEXT NOT NULL,
    estimated_effort TEXT DEFAULT 'moderate',
    reason TEXT DEFAULT '',
    occurrences INTEGER DEFAULT 1,
    status TEXT DEFAULT 'pending',
    created_at TEXT NOT NULL,
    last_triggered_at TEXT NOT NULL
);
"""

# Indexes and constraints added via migration (idempotent)
_MIGRATION_SQL = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_chapters_book_chapter ON chapters(book_id, chapter_number)",
    "CREATE INDEX IF NOT EXISTS idx_chapters_book_status ON chapters(book_id, status)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_sections_chapter_section ON sections(chapter_id, section_number)",
    "CREATE INDEX IF NOT EXISTS idx_story_bibles_book ON story_bibles(book_id)",
    "CREATE INDEX IF NOT EXISTS idx_revision_tasks_book_status ON revision_tasks(book_id, status)",
]


class Database:
    """SQLite database manager for book generation state."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        try:
            with self._get_conn() as conn:
                conn.executescript(_CREATE_TABLES_SQL)
        except sqlite3.DatabaseError as e:
            raise DatabaseError(f"Database initialization failed: {e}", {"path": str(self.db_path)}) from e
        self._migrate()

    def _migrate(self):
        """Apply idempotent schema migrations (indexes, constraints)."""
        with self._get_conn() as conn:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)

    # ---- Book CRUD ----

    def create_book(self, book: Book) -> int:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO books (title, prompt, settings, tier, status, generation_step, "
                "back_cover, error_message) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (book.title, book.prompt, json.dumps(book.settings.to_dict()),
                 book.tier, book.status.value, book.generation_step.value,
                 book.back_cover, book.error_message),
            )
            return cursor.lastrowid

    def get_book(self, book_id: int) -> Optional[Book]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if not row:
                return None
            return self._row_to_book(row)

    def list_books(self) -> list[Book]:
        with self._get_conn() as conn:
            rows = conn.execute("SELECT * FROM books ORDER BY id").fetchall()
            return [self._row_to_book(r) for r in rows]

    def update_book(self, book: Book):
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE books SET title=?, prompt=?, settings=?, tier=?, status=?, "
                "generation_step=?, back_cover=?, error_message=?, "
                "updated_at=CURRENT_TIMESTAMP WHERE id=?",
                (book.title, book.prompt, json.dumps(book.settings.to_dict()),
                 book.tier, book.status.value, book.generation_step.value,
                 book.back_cover, book.error_message, book.id),
            )

    def update_book_status(
        self,
        book_id: int,
        status: Optional[BookStatus] = None,
        step: Optional[GenerationStep] = None,
        error_message: Optional[str] = None,
    ):
        """Update only the supplied generation-state columns."""
        assignments, params = [], []
        if status is not None:
            assignments.append("status=?")
            params.append(status.value)
        if step is not None:
            assignments.append("generation_step=?")
            params.append(step.value)
        if error_message is not None:
            assignments.append("error_message=?")
            params.append(error_message)
        if not assignments:
            return
        params.append(book_id)
        with self._get_conn() as conn:
            conn.execute(
                f"UPDATE books SET {', '.join(assignments)}, updated_at=CURRENT_TIMESTAMP WHERE id=?",
                params,
            )

    def delete_book(self, book_id: int):
        """Delete a book and all associated data (sections, chapters, story bible)."""
        with self._get_conn() as conn:
            conn.execute(
                "DELETE FROM sections WHERE chapter_id IN (SELECT id FROM chapters WHERE book_id = ?)",
                (book_id,),
            )
            conn.execute("DELETE FROM chapters WHERE book_id = ?", (book_id,))
            conn.execute("DELETE FROM story_bibles WHERE book_id = ?", (book_id,))
            conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        logger.info("Book %d and all associated data deleted", book_id)

    def _row_to_book(self, row) -> Book:
        return Book(
            id=row["id"], title=row["title"], prompt=row["prompt"],
            settings=BookSettings.from_dict(json.loads(row["settings"] or "{}")),
            tier=row["tier"] or "free",
            status=BookStatus(row["status"]),
            generation_step=GenerationStep(row["generation_step"]),
            back_cover=row["back_cover"],
            error_message=row["error_message"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    # ---- Story bible ----

    def save_story_bible(
        self,
        book_id: int,
        bible: StoryBible,
        quality_plan: Optional[QualityPlan] = None,
        research: Optional[ResearchData] = None,
    ):
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO story_bibles (book_id, bible, quality_plan, research) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(book_id) DO UPDATE SET bible=excluded.bible, "
                "quality_plan=excluded.quality_plan, research=excluded.research, "
                "updated_at=CURRENT_TIMESTAMP",
                (book_id, json.dumps(bible.to_dict()),
                 json.dumps(quality_plan.to_dict()) if quality_plan else None,
                 json.dumps(research.to_dict()) if research else None),
            )

    def get_story_bible(self, book_id: int) -> Optional[StoryBible]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT bible FROM story_bibles WHERE book_id = ?", (book_id,),
            ).fetchone()
            if not row:
                return None
            return StoryBible.from_dict(json.loads(row["bible"]))

    def get_quality_plan(self, book_id: int) -> Optional[QualityPlan]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT quality_plan FROM story_bibles WHERE book_id = ?", (book_id,),
            ).fetchone()
            if not row or not row["quality_plan"]:
                return None
            return QualityPlan.from_dict(json.loads(row["quality_plan"]))

    def get_research(self, book_id: int) -> Optional[ResearchData]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT research FROM story_bibles WHERE book_id = ?", (book_id,),
            ).fetchone()
            if not row or not row["research"]:
                return None
            return ResearchData.from_dict(json.loads(row["research"]))

    # ---- Chapter CRUD ----

    def create_chapter(self, chapter: Chapter) -> int:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO chapters (book_id, chapter_number, title, summary, word_target, "
                "content, word_count, status, consistency_score, quality_score) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (chapter.book_id, chapter.chapter_number, chapter.title, chapter.summary,
                 chapter.word_target, chapter.content, chapter.word_count,
                 chapter.status.value, chapter.consistency_score, chapter.quality_score),
            )
            return cursor.lastrowid

    def get_chapter(self, chapter_id: int) -> Optional[Chapter]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM chapters WHERE id = ?", (chapter_id,)).fetchone()
            if not row:
                return None
            return self._row_to_chapter(row)

    def get_chapter_by_number(self, book_id: int, chapter_number: int) -> Optional[Chapter]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM chapters WHERE book_id = ? AND chapter_number = ?",
                (book_id, chapter_number),
            ).fetchone()
            if not row:
                return None
            return self._row_to_chapter(row)

    def get_chapters(self, book_id: int, status: Optional[ChapterStatus] = None) -> list[Chapter]:
        with self._get_conn() as conn:
            if status:
                rows = conn.execute(
                    "SELECT * FROM chapters WHERE book_id = ? AND status = ? ORDER BY chapter_number",
                    (book_id, status.value),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM chapters WHERE book_id = ? ORDER BY chapter_number",
                    (book_id,),
                ).fetchall()
            return [self._row_to_chapter(r) for r in rows]

    def update_chapter(self, chapter: Chapter):
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE chapters SET title=?, summary=?, word_target=?, content=?, "
                "word_count=?, status=?, consistency_score=?, quality_score=?, "
                "updated_at=CURRENT_TIMESTAMP WHERE id=?",
                (chapter.title, chapter.summary, chapter.word_target, chapter.content,
                 chapter.word_count, chapter.status.value, chapter.consistency_score,
                 chapter.quality_score, chapter.id),
            )

    def update_chapter_status(self, chapter_id: int, status: ChapterStatus):
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE chapters SET status=?, updated_at=CURRENT_TIMESTAMP WHERE id=?",
                (status.value, chapter_id),
            )

    def delete_chapters(self, book_id: int) -> int:
        """Delete all chapters (and their sections) of a book. Returns the count removed."""
        with self._get_conn() as conn:
            conn.execute(
                "DELETE FROM sections WHERE chapter_id IN (SELECT id FROM chapters WHERE book_id = ?)",
                (book_id,),
            )
            cursor = conn.execute("DELETE FROM chapters WHERE book_id = ?", (book_id,))
            return cursor.rowcount

    def _row_to_chapter(self, row) -> Chapter:
        return Chapter(
            id=row["id"], book_id=row["book_id"],
            chapter_number=row["chapter_number"], title=row["title"],
            summary=row["summary"] or "", word_target=row["word_target"] or 0,
            content=row["content"], word_count=row["word_count"] or 0,
            status=ChapterStatus(row["status"]),
            consistency_score=row["consistency_score"],
            quality_score=row["quality_score"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    # ---- Section CRUD ----

    def create_section(self, section: Section) -> int:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO sections (chapter_id, section_number, title, word_target, content, "
                "word_count, status, scene_context, model, tokens_used, consistency_score, "
                "quality_score) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (section.chapter_id, section.section_number, section.title,
                 section.word_target, section.content, section.word_count,
                 section.status.value, section.scene_context, section.model,
                 section.tokens_used, section.consistency_score, section.quality_score),
            )
            return cursor.lastrowid

    def get_sections(self, chapter_id: int) -> list[Section]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM sections WHERE chapter_id = ? ORDER BY section_number",
                (chapter_id,),
            ).fetchall()
            return [self._row_to_section(r) for r in rows]

    def get_section(self, chapter_id: int, section_number: int) -> Optional[Section]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM sections WHERE chapter_id = ? AND section_number = ?",
                (chapter_id, section_number),
            ).fetchone()
            if not row:
                return None
            return self._row_to_section(row)

    def update_section(self, section: Section):
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE sections SET title=?, word_target=?, content=?, word_count=?, "
                "status=?, scene_context=?, model=?, tokens_used=?, consistency_score=?, "
                "quality_score=?, updated_at=CURRENT_TIMESTAMP WHERE id=?",
                (section.title, section.word_target, section.content, section.word_count,
                 section.status.value, section.scene_context, section.model,
                 section.tokens_used, section.consistency_score, section.quality_score,
                 section.id),
            )

    def delete_section(self, section_id: int):
        with self._get_conn() as conn:
            conn.execute("DELETE FROM sections WHERE id = ?", (section_id,))

    def count_sections(self, chapter_id: int) -> int:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM sections WHERE chapter_id = ?", (chapter_id,),
            ).fetchone()
            return row["n"]

    def _row_to_section(self, row) -> Section:
        return Section(
            id=row["id"], chapter_id=row["chapter_id"],
            section_number=row["section_number"], title=row["title"] or "",
            word_target=row["word_target"] or 0, content=row["content"],
            word_count=row["word_count"] or 0,
            status=SectionStatus(row["status"]),
            scene_context=row["scene_context"], model=row["model"],
            tokens_used=row["tokens_used"] or 0,
            consistency_score=row["consistency_score"],
            quality_score=row["quality_score"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    # ---- Revision backlog ----

    def save_revision_task(self, task: RevisionTask):
        """Insert or replace a revision task (tasks carry their own string ids)."""
        with self._get_conn() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO revision_tasks (id, book_id, chapter_number, trigger, "
                "priority, estimated_effort, reason, occurrences, status, created_at, "
                "last_triggered_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (task.id, task.book_id, task.chapter_number, task.trigger.value,
                 task.priority.value, task.estimated_effort, task.reason, task.occurrences,
                 task.status.value, task.created_at.isoformat(),
                 task.last_triggered_at.isoformat()),
            )

    def get_revision_task(self, task_id: str) -> Optional[RevisionTask]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM revision_tasks WHERE id = ?", (task_id,)).fetchone()
            if not row:
                return None
            return self._row_to_revision_task(row)

    def get_revision_tasks(
        self, book_id: Optional[int] = None, status: Optional[RevisionStatus] = None,
    ) -> list[RevisionTask]:
        clauses, params = [], []
        if book_id is not None:
            clauses.append("book_id = ?")
            params.append(book_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._get_conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM revision_tasks {where} ORDER BY created_at", params,
            ).fetchall()
            return [self._row_to_revision_task(r) for r in rows]

    def _row_to_revision_task(self, row) -> RevisionTask:
        return RevisionTask(
            id=row["id"], book_id=row["book_id"], chapter_number=row["chapter_number"],
            trigger=RevisionTriggerType(row["trigger"]),
            priority=RevisionPriority(row["priority"]),
            estimated_effort=row["estimated_effort"], reason=row["reason"] or "",
            occurrences=row["occurrences"], status=RevisionStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            last_triggered_at=datetime.fromisoformat(row["last_triggered_at"]),
        )
