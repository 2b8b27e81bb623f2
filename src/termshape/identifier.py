"""Identifiers used as record keys and enum tags.

An identifier is a label plus the source position it was written at.
Only the label takes part in equality, ordering and hashing, so two
identifiers spelled the same way are interchangeable as mapping keys no
matter where they came from.
"""

from __future__ import annotations

from functools import total_ordering

from termshape.source import Span

# Marks identifiers generated by the evaluator. It cannot appear in a
# hand-written program, so generated names never clash with user names.
GEN_PREFIX = "%"


@total_ordering
class Identifier:
    __slots__ = ("label", "pos")

    def __init__(self, label: str, pos: Span | None = None) -> None:
        object.__setattr__(self, "label", label)
        object.__setattr__(self, "pos", pos)

    @classmethod
    def from_label(cls, label: str | Identifier) -> Identifier:
        """Build a position-less identifier."""
        if isinstance(label, Identifier):
            return cls(label.label)
        return cls(str(label))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f"Identifier is immutable (cannot set {name!r})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.label == other.label

    def __lt__(self, other: Identifier) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.label < other.label

    def __hash__(self) -> int:
        return hash(self.label)

    def __str__(self) -> str:
        return self.label

    def __repr__(self) -> str:
        if self.pos is None:
            return f"Identifier({self.label!r})"
        return f"Identifier({self.label!r}, pos={self.pos})"

    def is_generated(self) -> bool:
        return self.label.startswith(GEN_PREFIX)
