"""Short-lived storage bridging the generate and save requests.

Entries expire after a fixed TTL and expiry is enforced on every read,
so a save that arrives late sees a not-found error even if no sweep ran.
Neither backend is durable storage.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from threading import Lock
import time
from typing import Callable, Protocol

from sqlalchemy import delete
from sqlalchemy.orm import Session

from timetable_api.core.config import Settings
from timetable_api.core.exceptions import ResourceNotFoundError
from timetable_api.models.proposal import CachedProposal
from timetable_api.services.scheduling.domain import Proposal

logger = logging.getLogger(__name__)


class ProposalCache(Protocol):
    def put(self, proposal: Proposal) -> None: ...

    def get(self, proposal_id: str) -> Proposal: ...

    def discard(self, proposal_id: str) -> None: ...

    def purge_expired(self) -> int: ...


def _not_found(proposal_id: str) -> ResourceNotFoundError:
    logger.info("PROPOSAL CACHE MISS | proposal_id=%s", proposal_id)
    return ResourceNotFoundError("Proposal", proposal_id, message="proposal not found or expired")


class InMemoryProposalCache:
    """Process-local cache; suitable for a single instance or tests."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._items: dict[str, tuple[float, Proposal]] = {}
        self._lock = Lock()

    def put(self, proposal: Proposal) -> None:
        with self._lock:
            self._purge_locked()
            self._items[proposal.proposal_id] = (self._clock() + self._ttl, proposal)

    def get(self, proposal_id: str) -> Proposal:
        with self._lock:
            entry = self._items.get(proposal_id)
            if entry is None:
                raise _not_found(proposal_id)
            expires_at, proposal = entry
            if self._clock() >= expires_at:
                del self._items[proposal_id]
                logger.info("PROPOSAL EXPIRED | proposal_id=%s | backend=memory", proposal_id)
                raise _not_found(proposal_id)
            return proposal

    def discard(self, proposal_id: str) -> None:
        with self._lock:
            self._items.pop(proposal_id, None)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._items.items() if now >= expires_at]
        for key in expired:
            del self._items[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseProposalCache:
    """Cache rows shared by every API instance pointing at the same database."""

    def __init__(self, db: Session, ttl_seconds: int, clock: Callable[[], datetime] = _utc_now) -> None:
        self.db = db
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def put(self, proposal: Proposal) -> None:
        self.purge_expired()
        self.db.merge(
            CachedProposal(
                id=proposal.proposal_id,
                term_id=proposal.term_id,
                class_id=proposal.class_id,
                payload=proposal.as_payload(),
                expires_at=self._clock() + self._ttl,
            )
        )
        self.db.commit()

    def get(self, proposal_id: str) -> Proposal:
        row = self.db.get(CachedProposal, proposal_id)
        if row is None:
            raise _not_found(proposal_id)
        if self._clock() >= _as_utc(row.expires_at):
            self.db.delete(row)
            self.db.commit()
            logger.info("PROPOSAL EXPIRED | proposal_id=%s | backend=database", proposal_id)
            raise _not_found(proposal_id)
        return Proposal.from_payload(row.payload)

    def discard(self, proposal_id: str) -> None:
        self.db.execute(delete(CachedProposal).where(CachedProposal.id == proposal_id))
        self.db.commit()

    def purge_expired(self) -> int:
        result = self.db.execute(delete(CachedProposal).where(CachedProposal.expires_at <= self._clock()))
        return result.rowcount or 0


_memory_cache: InMemoryProposalCache | None = None
_memory_cache_lock = Lock()


def get_memory_cache(ttl_seconds: int) -> InMemoryProposalCache:
    global _memory_cache
    with _memory_cache_lock:
        if _memory_cache is None:
            _memory_cache = InMemoryProposalCache(ttl_seconds)
        return _memory_cache


def clear_proposal_cache() -> None:
    if _memory_cache is not None:
        _memory_cache.clear()


def build_proposal_cache(db: Session, settings: Settings) -> ProposalCache:
    if settings.proposal_cache_backend == "memory":
        return get_memory_cache(settings.proposal_ttl_seconds)
    return DatabaseProposalCache(db, settings.proposal_ttl_seconds)
