"""Tests for JobExperienceLoop."""

import asyncio

import pytest

from src.domain.models.candidate import LinkedInExperience
from src.services.job_loop import JobExperienceLoop


def _jobs(n: int):
    return [
        LinkedInExperience(title=f"Role {i}", company=f"Company {i}", duration=f"{i}y")
        for i in range(n)
    ]


class TestInitialize:
    """Tests for loop selection."""

    def test_selects_most_recent_jobs(self):
        """Only the first max_items jobs are selected."""
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        assert loop.initialize(_jobs(3))
        assert len(loop.state.items) == 2
        assert loop.current_item.title == "Role 0"
        assert loop.is_active

    def test_fewer_jobs_than_limit(self):
        """A single job is selected as-is."""
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        loop.initialize(_jobs(1))
        assert len(loop.state.items) == 1
        assert not loop.state.has_more_items

    def test_no_jobs_leaves_loop_inactive(self):
        """With nothing to discuss the loop never activates."""
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        loop.initialize([])
        assert not loop.is_active
        assert loop.context() is None

    def test_initialize_is_idempotent(self):
        """Later calls are ignored until reset()."""
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        loop.initialize(_jobs(3))
        assert not loop.initialize(_jobs(1))
        assert len(loop.state.items) == 2

    def test_selection_is_frozen(self):
        """Changes to the source after initialization do not leak in."""
        source = _jobs(3)
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        loop.initialize(source)
        source.insert(0, LinkedInExperience(title="New", company="X"))
        assert loop.current_item.title == "Role 0"


class TestAdvanceItem:
    """Tests for advance_item."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 2, 3])
    async def test_returns_true_n_minus_one_times(self, count):
        """advance_item() reports more items exactly len(items) - 1 times."""
        loop = JobExperienceLoop(max_items=count, settle_delay_s=0)
        loop.initialize(_jobs(count))

        results = [await loop.advance_item() for _ in range(count + 2)]

        assert results == [True] * (count - 1) + [False] * 3
        assert loop.is_loop_complete
        assert not loop.is_active

    @pytest.mark.asyncio
    async def test_cursor_moves_to_next_job(self):
        """The current job follows the cursor."""
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        loop.initialize(_jobs(2))
        await loop.advance_item()
        assert loop.cursor == 1
        assert loop.current_item.title == "Role 1"

    @pytest.mark.asyncio
    async def test_inactive_loop_returns_false(self):
        """An uninitialized loop never advances."""
        loop = JobExperienceLoop()
        assert await loop.advance_item() is False

    @pytest.mark.asyncio
    async def test_concurrent_advance_rejected(self):
        """A second advance while settling does not move the cursor twice."""
        loop = JobExperienceLoop(max_items=3, settle_delay_s=0.05)
        loop.initialize(_jobs(3))

        first = asyncio.create_task(loop.advance_item())
        await asyncio.sleep(0)
        assert loop.is_transitioning

        second = await loop.advance_item()
        assert second is True
        assert loop.cursor == 0

        assert await first is True
        assert loop.cursor == 1
        assert not loop.is_transitioning


class TestContext:
    """Tests for the per-job context."""

    def test_context_describes_position(self):
        """Context carries index, total and the next job."""
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        loop.initialize(_jobs(2))

        ctx = loop.context()

        assert ctx.index == 0
        assert ctx.total == 2
        assert ctx.has_more_items
        assert ctx.next_item.title == "Role 1"
        assert ctx.position_label == "most recent"
        assert loop.progress_message() == "Role 0 at Company 0 (1 of 2)"

    @pytest.mark.asyncio
    async def test_last_job_context(self):
        """The last job has no next item."""
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        loop.initialize(_jobs(2))
        await loop.advance_item()

        ctx = loop.context()

        assert not ctx.has_more_items
        assert ctx.next_item is None
        assert ctx.position_label == "oldest"

    def test_reset_discards_loop(self):
        """reset() allows a fresh initialization."""
        loop = JobExperienceLoop(max_items=2, settle_delay_s=0)
        loop.initialize(_jobs(2))
        loop.reset()
        assert not loop.is_initialized
        assert loop.initialize(_jobs(1))
