"""
Shared test fixtures.

Step table, a fast interview configuration, a factory for fully wired
orchestrators backed by in-process speech adapters, and a temporary database.
"""

import tempfile
from pathlib import Path
from typing import List, Optional
from unittest.mock import patch

import pytest

from src.core import step_loader
from src.core.config import (
    GenerationConfig,
    InterviewConfig,
    JobLoopConfig,
    OrchestratorConfig,
)
from src.llm.client import LLMClient
from src.persistence.database import init_database
from src.persistence.repositories.profile_repo import ProfileRepository
from src.services.orchestrator import build_orchestrator
from src.services.speech.capture import StreamingSpeechCapture
from src.services.speech.output import ConsoleSpeechOutput


@pytest.fixture
def steps():
    """Active steps from config/interview_steps.yaml."""
    step_loader.clear_cache()
    yield step_loader.load_steps()
    step_loader.clear_cache()


@pytest.fixture
def fast_config():
    """Interview configuration with near-zero delays."""
    return InterviewConfig(
        orchestrator=OrchestratorConfig(
            auto_submit_delay_s=0.05,
            min_transcript_chars=10,
            max_retries=3,
            transition_delay_s=0,
        ),
        generation=GenerationConfig(max_attempts=1, base_delay_s=0, history_limit=4),
        job_loop=JobLoopConfig(max_items=2, settle_delay_s=0),
    )


@pytest.fixture
def make_orchestrator(steps, fast_config):
    """
    Factory for orchestrators wired with in-process speech adapters.

    Returns (orchestrator, capture, spoken) where ``spoken`` collects every
    line written by the output adapter.
    """

    def _make(
        llm_client: LLMClient,
        fallback_client: Optional[LLMClient] = None,
        step_table=None,
        config: Optional[InterviewConfig] = None,
        store: Optional[ProfileRepository] = None,
        session_id: str = "test-session",
    ):
        capture = StreamingSpeechCapture()
        spoken: List[str] = []
        output = ConsoleSpeechOutput(writer=spoken.append, words_per_second=0, prefix="")
        orchestrator = build_orchestrator(
            session_id=session_id,
            capture=capture,
            output=output,
            store=store,
            llm_client=llm_client,
            fallback_client=fallback_client or llm_client,
            steps=step_table if step_table is not None else steps,
            config=config or fast_config,
        )
        return orchestrator, capture, spoken

    return _make


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from src.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("src.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
async def profile_repo(test_db):
    """Profile repository on the test database."""
    return ProfileRepository(test_db)
