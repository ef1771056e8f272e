from datetime import datetime, timedelta, timezone

import pytest

from timetable_api.core.config import Settings
from timetable_api.core.exceptions import ResourceNotFoundError
from timetable_api.models.proposal import CachedProposal
from timetable_api.services.proposal_cache import (
    DatabaseProposalCache,
    InMemoryProposalCache,
    build_proposal_cache,
)
from timetable_api.services.scheduling.domain import (
    UNMET_DEMAND,
    Conflict,
    ImprovementStats,
    Proposal,
    SlotAssignment,
)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        if isinstance(self.now, datetime):
            self.now = self.now + timedelta(seconds=seconds)
        else:
            self.now += seconds


def make_proposal(proposal_id="p-1"):
    return Proposal(
        proposal_id=proposal_id,
        term_id="2025",
        class_id="10A",
        score=-0.5,
        slots=(
            SlotAssignment(1, 0, "math", "t1"),
            SlotAssignment(2, 3, "art", "t2", room="R1"),
        ),
        conflicts=(
            Conflict(
                type=UNMET_DEMAND,
                message="unable to schedule subject math",
                meta={"subjectId": "math", "shortfall": 1},
            ),
        ),
        stats=ImprovementStats(iterations=3, gap_penalty=1.0, load_penalty=0.25),
        context={"days": [1, 2], "timeSlotsPerDay": 4},
    )


def test_memory_cache_returns_stored_proposal():
    cache = InMemoryProposalCache(ttl_seconds=60, clock=FakeClock(0.0))
    proposal = make_proposal()

    cache.put(proposal)

    assert cache.get("p-1") is proposal


def test_memory_cache_expires_on_read():
    clock = FakeClock(0.0)
    cache = InMemoryProposalCache(ttl_seconds=60, clock=clock)
    cache.put(make_proposal())

    clock.advance(59)
    assert cache.get("p-1").proposal_id == "p-1"

    clock.advance(1)
    with pytest.raises(ResourceNotFoundError) as exc_info:
        cache.get("p-1")
    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "proposal not found or expired"


def test_memory_cache_unknown_id_is_not_found():
    cache = InMemoryProposalCache(ttl_seconds=60)

    with pytest.raises(ResourceNotFoundError):
        cache.get("missing")


def test_memory_cache_keeps_entries_independent():
    clock = FakeClock(0.0)
    cache = InMemoryProposalCache(ttl_seconds=60, clock=clock)
    cache.put(make_proposal("p-1"))
    clock.advance(30)
    cache.put(make_proposal("p-2"))
    clock.advance(30)

    assert cache.purge_expired() == 1
    assert cache.get("p-2").proposal_id == "p-2"

    cache.discard("p-2")
    with pytest.raises(ResourceNotFoundError):
        cache.get("p-2")


def test_database_cache_round_trips_proposal(db_session):
    clock = FakeClock(datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc))
    cache = DatabaseProposalCache(db_session, ttl_seconds=1800, clock=clock)
    proposal = make_proposal()

    cache.put(proposal)
    db_session.expire_all()

    assert cache.get("p-1") == proposal


def test_database_cache_expires_on_read(db_session):
    clock = FakeClock(datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc))
    cache = DatabaseProposalCache(db_session, ttl_seconds=1800, clock=clock)
    cache.put(make_proposal())

    clock.advance(1800)

    with pytest.raises(ResourceNotFoundError):
        cache.get("p-1")
    assert db_session.get(CachedProposal, "p-1") is None


def test_database_cache_purges_expired_rows_on_put(db_session):
    clock = FakeClock(datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc))
    cache = DatabaseProposalCache(db_session, ttl_seconds=60, clock=clock)
    cache.put(make_proposal("p-1"))

    clock.advance(120)
    cache.put(make_proposal("p-2"))

    assert db_session.get(CachedProposal, "p-1") is None
    assert cache.get("p-2").proposal_id == "p-2"


def test_build_proposal_cache_selects_backend(db_session):
    memory = build_proposal_cache(db_session, Settings(proposal_cache_backend="memory"))
    database = build_proposal_cache(db_session, Settings(proposal_cache_backend="database"))

    assert isinstance(memory, InMemoryProposalCache)
    assert isinstance(database, DatabaseProposalCache)
