"""Shared pytest fixtures for the novelforge test suite."""

import pytest
from unittest.mock import MagicMock, AsyncMock


SAMPLE_PROSE = (
    'Mara felt her heart pound as the tide turned. "We go now," she whispered.\n\n'
    'Tomas smiled despite the cold. "Then we go together." The lantern shook in '
    "his hand and the sea breathed against the rocks below the lighthouse."
)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite database path."""
    return tmp_path / "test_books.db"


@pytest.fixture
def db(tmp_db_path):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(tmp_db_path)


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path."""
    from config.settings import Settings
    return Settings(
        sqlite_db_path=tmp_path / "books.db",
        checkpoint_dir=tmp_path / "checkpoints",
        log_dir=tmp_path / "logs",
        progress_throttle_ms=0,
    )


# ---------------------------------------------------------------------------
# Completion client mock
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_llm():
    """Return a MagicMock replacing CompletionClient.

    Every completion returns a short passage of prose, so JSON-expecting
    agents take their fallback paths unless a test overrides the return.
    """
    from tools.completion_client import CompletionResult
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=CompletionResult(SAMPLE_PROSE, 120))
    llm.complete_json = AsyncMock(return_value={})
    llm.get_usage_summary.return_value = {"total_calls": 1, "total_tokens": 120}
    return llm


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_book(db):
    """Insert and return a FREE-tier 5,000-word fantasy book."""
    from models.book import Book, BookSettings
    book = Book(
        title="The Lighthouse Door",
        prompt="A lighthouse keeper finds a door in the sea",
        settings=BookSettings(
            genre="fantasy",
            tone="wistful",
            target_word_count=5000,
            character_names=["Mara", "Tomas"],
        ),
        tier="free",
    )
    book.id = db.create_book(book)
    return book


@pytest.fixture
def sample_bible():
    """A three-chapter story bible with two scenes per chapter."""
    from models.story_bible import (
        ChapterPlan, CharacterProfile, ScenePlan, StoryBible, StoryStructure,
    )
    chapters = [
        ChapterPlan(
            number=n,
            title=f"Tide {n}",
            purpose=f"Purpose of chapter {n}",
            scenes=[
                ScenePlan(purpose="conversation at the lamp", setting="Lighthouse",
                          characters=["Mara", "Tomas"], mood="quiet"),
                ScenePlan(purpose="crossing", setting="The Sea Door",
                          characters=["Mara"], conflict="a storm chase"),
            ],
            research_focus=["lighthouses"],
        )
        for n in range(1, 4)
    ]
    return StoryBible(
        premise="A keeper finds a door",
        theme="Thresholds",
        tone="wistful",
        characters=[
            CharacterProfile(name="Mara", role="protagonist", description="The keeper",
                             relationships={"Tomas": "brother"}),
            CharacterProfile(name="Tomas", role="supporting", description="Her brother"),
        ],
        world_rules=["The door opens only at low tide"],
        structure=StoryStructure(climax_chapter=2),
        chapters=chapters,
        plot_threads=["The door"],
    )


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def progress_channel():
    from workflow.callbacks import InMemoryProgressChannel
    return InMemoryProgressChannel()


@pytest.fixture
def services(settings, mock_llm, progress_channel, tmp_path):
    """OrchestratorServices wired to temp storage and the mock completion client."""
    from models.database import Database
    from tools.rate_limiter import RateLimiter
    from workflow.book_orchestrator import OrchestratorServices
    from workflow.checkpoint import CheckpointStore
    from workflow.lease import BookLeaseManager
    from workflow.progress import ProgressReporter
    return OrchestratorServices(
        db=Database(settings.sqlite_db_path),
        settings=settings,
        llm=mock_llm,
        rate_limiter=RateLimiter(),
        checkpoints=CheckpointStore(settings.checkpoint_dir),
        progress=ProgressReporter(progress_channel, throttle_ms=0),
        leases=BookLeaseManager(tmp_path / "leases"),
    )


@pytest.fixture
def orchestrator(services):
    from workflow.book_orchestrator import BookOrchestrator
    return BookOrchestrator(services)


@pytest.fixture
def free_book(services):
    """A FREE-tier 5,000-word book stored in the services database."""
    from models.book import Book, BookSettings
    book = Book(
        title="The Lighthouse Door",
        prompt="A lighthouse keeper finds a door in the sea",
        back_cover="Mara keeps the light. The sea keeps a door.",
        settings=BookSettings(genre="fantasy", tone="wistful", target_word_count=5000),
        tier="free",
    )
    book.id = services.db.create_book(book)
    return book
