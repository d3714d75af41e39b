"""
Audience Model

Content is tagged for parents, coaches, or both. Queries are always scoped to
exactly one audience. Every tag resolves to the set of audiences it reaches,
and a record is visible to a query only if the query's audience is in that
set.

    parent  -> {parent}
    coach   -> {coach}
    both    -> {parent, coach}   (Q&A pairs)
    shared  -> {parent, coach}   (document partitions)
"""

from enum import Enum
from typing import FrozenSet, Optional

from .errors import InvalidRequestError


class Audience(str, Enum):
    """Audience tag on Q&A pairs and incoming questions"""
    PARENT = "parent"
    COACH = "coach"
    BOTH = "both"

    @property
    def reach(self) -> FrozenSet["Audience"]:
        """Concrete audiences this tag is visible to"""
        if self is Audience.BOTH:
            return frozenset({Audience.PARENT, Audience.COACH})
        return frozenset({self})

    def visible_to(self, query_audience: "Audience") -> bool:
        return query_audience in self.reach

    @classmethod
    def for_query(cls, value: Optional[str]) -> "Audience":
        """Resolve a request's audience. Missing means parent."""
        if value is None or value == "":
            return cls.PARENT
        try:
            audience = cls(value)
        except ValueError:
            raise InvalidRequestError(
                f"Audience must be parent or coach, got {value!r}",
                code="invalid_audience",
            )
        if audience is cls.BOTH:
            raise InvalidRequestError(
                "Questions are asked as parent or coach, not both",
                code="invalid_audience",
            )
        return audience


class Partition(str, Enum):
    """Document storage partition"""
    PARENT = "parent"
    COACH = "coach"
    SHARED = "shared"

    @property
    def reach(self) -> FrozenSet[Audience]:
        if self is Partition.SHARED:
            return frozenset({Audience.PARENT, Audience.COACH})
        return frozenset({Audience(self.value)})

    def visible_to(self, query_audience: Audience) -> bool:
        return query_audience in self.reach

    @classmethod
    def for_audience(cls, audience: Audience) -> "Partition":
        """The audience-specific partition searched alongside SHARED"""
        if audience is Audience.BOTH:
            raise ValueError("BOTH has no dedicated document partition")
        return cls(audience.value)

    @classmethod
    def parse(cls, value: Optional[str]) -> "Partition":
        if not value:
            return cls.PARENT
        try:
            return cls(value)
        except ValueError:
            raise InvalidRequestError(
                f"Audience must be parent, coach, or shared, got {value!r}",
                code="invalid_audience",
            )
