"""
Store filter conditions.

Conditions are plain data so each store backend can evaluate them its own
way: the memory store checks them against item dicts, the SQL store
compiles them to column expressions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Tuple


class Condition(ABC):
    """Base class for filter conditions"""

    @abstractmethod
    def matches(self, item: Dict[str, Any]) -> bool:
        raise NotImplementedError

    @abstractmethod
    def shape(self) -> str:
        """Stable description used to bind scan cursors to a query"""
        raise NotImplementedError

    def __and__(self, other: "Condition") -> "And":
        return And((self, other))


@dataclass(frozen=True)
class Eq(Condition):
    attribute: str
    value: Any

    def matches(self, item: Dict[str, Any]) -> bool:
        return item.get(self.attribute) == self.value

    def shape(self) -> str:
        return f"{self.attribute} = {self.value!r}"


@dataclass(frozen=True)
class Gt(Condition):
    attribute: str
    value: Any

    def matches(self, item: Dict[str, Any]) -> bool:
        current = item.get(self.attribute)
        return current is not None and current > self.value

    def shape(self) -> str:
        return f"{self.attribute} > {self.value!r}"


@dataclass(frozen=True)
class Between(Condition):
    """Inclusive range on both ends"""
    attribute: str
    low: Any
    high: Any

    def matches(self, item: Dict[str, Any]) -> bool:
        current = item.get(self.attribute)
        return current is not None and self.low <= current <= self.high

    def shape(self) -> str:
        return f"{self.attribute} BETWEEN {self.low!r} AND {self.high!r}"


@dataclass(frozen=True)
class And(Condition):
    conditions: Tuple[Condition, ...]

    def matches(self, item: Dict[str, Any]) -> bool:
        return all(c.matches(item) for c in self.conditions)

    def shape(self) -> str:
        return " AND ".join(f"({c.shape()})" for c in self.conditions)

    def __and__(self, other: Condition) -> "And":
        return And(self.conditions + (other,))
