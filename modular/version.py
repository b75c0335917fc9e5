"""
Comparable version numbers for modules and component applicability ranges.

A version is a dot-separated list of non-negative integers. Trailing zeros are
insignificant, so ``2``, ``2.0`` and ``2.0.0`` compare equal. The literal ``*``
denotes an unbounded version that is greater than every concrete version and
is used as the default upper bound of a component's range.
"""

from functools import total_ordering
from typing import Tuple, Union

UNBOUNDED_TOKEN = "*"


@total_ordering
class VersionNumber:
    """Immutable, totally ordered version number."""

    __slots__ = ("_parts", "_unbounded")

    def __init__(self, version: Union[str, "VersionNumber"]):
        if isinstance(version, VersionNumber):
            parts, unbounded = version._parts, version._unbounded
        else:
            parts, unbounded = self._parse(version)
        object.__setattr__(self, "_parts", parts)
        object.__setattr__(self, "_unbounded", unbounded)

    @staticmethod
    def _parse(version: str) -> Tuple[Tuple[int, ...], bool]:
        if not isinstance(version, str):
            raise TypeError(
                f"Version must be a string, got {type(version).__name__}"
            )
        text = version.strip()
        if text == UNBOUNDED_TOKEN:
            return (), True
        if not text:
            raise ValueError("Version string is empty")

        parts = []
        for segment in text.split("."):
            if not (segment.isascii() and segment.isdigit()):
                raise ValueError(
                    f"Invalid version '{version}': '{segment}' is not a non-negative integer"
                )
            parts.append(int(segment))
        return tuple(parts), False

    def __setattr__(self, name, value):
        raise AttributeError("VersionNumber is immutable")

    @property
    def parts(self) -> Tuple[int, ...]:
        """The numeric segments as given (empty for the unbounded version)."""
        return self._parts

    @property
    def is_unbounded(self) -> bool:
        return self._unbounded

    def _key(self) -> Tuple[int, Tuple[int, ...]]:
        if self._unbounded:
            return (1, ())
        parts = list(self._parts)
        while parts and parts[-1] == 0:
            parts.pop()
        return (0, tuple(parts))

    def __eq__(self, other) -> bool:
        if not isinstance(other, VersionNumber):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other) -> bool:
        if not isinstance(other, VersionNumber):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        if self._unbounded:
            return UNBOUNDED_TOKEN
        return ".".join(str(part) for part in self._parts)

    def __repr__(self) -> str:
        return f"VersionNumber('{self}')"

    def __reduce__(self):
        return (VersionNumber, (str(self),))

    @classmethod
    def unbounded(cls) -> "VersionNumber":
        return cls(UNBOUNDED_TOKEN)


def as_version(value: Union[str, int, float, VersionNumber]) -> VersionNumber:
    """
    Coerce configuration input into a VersionNumber.

    YAML turns ``version: 2.0`` into a float, so numbers are accepted and
    converted through their string form.
    """
    if isinstance(value, VersionNumber):
        return value
    if isinstance(value, bool):
        raise TypeError("Version cannot be a boolean")
    if isinstance(value, (int, float)):
        return VersionNumber(str(value))
    return VersionNumber(value)


MINIMUM_VERSION = VersionNumber("0.0.0")
UNBOUNDED_VERSION = VersionNumber.unbounded()
