"""
FIFO revisit queue of skipped questions.

An explicit ordered mapping: an ordered tuple of question ids plus a lookup
table. Values are immutable; every mutation returns a new queue.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class SkipQueue:
    """Insertion-ordered queue of deferred questions keyed by identity."""

    order: tuple[str, ...] = ()
    lookup: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_items(cls, items: list[tuple[str, Any]]) -> SkipQueue:
        queue = cls()
        for question_id, question in items:
            queue = queue.push(question_id, question)
        return queue

    def __len__(self) -> int:
        return len(self.order)

    def __bool__(self) -> bool:
        return bool(self.order)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self.lookup

    def __iter__(self) -> Iterator[str]:
        return iter(self.order)

    def __getitem__(self, question_id: str) -> Any:
        return self.lookup[question_id]

    def get(self, question_id: str, default: Any = None) -> Any:
        return self.lookup.get(question_id, default)

    def items(self) -> tuple[tuple[str, Any], ...]:
        return tuple((qid, self.lookup[qid]) for qid in self.order)

    @property
    def head(self) -> tuple[str, Any] | None:
        """First skipped question, or None when empty."""
        if not self.order:
            return None
        qid = self.order[0]
        return qid, self.lookup[qid]

    def push(self, question_id: str, question: Any) -> SkipQueue:
        """Enqueue a question.

        Re-pushing an id that is already queued keeps its position and
        refreshes the stored value.
        """
        lookup = dict(self.lookup)
        lookup[question_id] = question
        order = self.order if question_id in self.lookup else (*self.order, question_id)
        return SkipQueue(order=order, lookup=MappingProxyType(lookup))

    def remove(self, question_id: str) -> SkipQueue:
        if question_id not in self.lookup:
            return self
        lookup = dict(self.lookup)
        del lookup[question_id]
        order = tuple(qid for qid in self.order if qid != question_id)
        return SkipQueue(order=order, lookup=MappingProxyType(lookup))

    def pop_head(self) -> tuple[str, Any, SkipQueue]:
        """Dequeue the head. Raises IndexError when empty."""
        if not self.order:
            raise IndexError("pop from an empty skip queue")
        qid = self.order[0]
        return qid, self.lookup[qid], self.remove(qid)
