"""Candidates produced by crawl strategies."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional


class Candidate(NamedTuple):
    """An external identifier awaiting a decision to fetch."""
    external_id: str
    title: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class CandidateBatch:
    """One listing page, archive snapshot or id chunk."""

    index: int
    candidates: List[Candidate] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.candidates)


@dataclass
class BatchOutcome:
    """What the run loop has seen so far in the current batch.

    Handed to `CrawlStrategy.should_stop_early` after every candidate and once
    more when the batch is complete.
    """

    batch_index: int
    batch_size: int
    seen: int = 0
    existing: int = 0
    last_existing: bool = False
    batch_complete: bool = False

    @property
    def all_existing(self) -> bool:
        return self.seen > 0 and self.existing == self.seen
