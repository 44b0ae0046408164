"""Domain entities — pure data structures with no external dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal, Union


class LanguageCategory(str, Enum):
    """Display bucket for a recognised language."""

    CODE = "Code"
    CONFIG = "Config"
    DOCS = "Docs"
    SCRIPT = "Script"
    OTHER = "Other"


@dataclass(frozen=True, slots=True)
class LanguageDefinition:
    """Language label plus its category, as resolved from a file name."""

    name: str
    category: LanguageCategory


@dataclass(frozen=True, slots=True)
class ScratchWorkspace:
    """A private temporary directory holding one checked-out repository."""

    root: Path


@dataclass(slots=True)
class LanguageTally:
    """Per-language line counts plus the running total.

    ``add`` is the only mutator and contains no suspension point, so
    concurrent workers on one event loop cannot tear the two counters apart.
    """

    stats: dict[str, int] = field(default_factory=dict)
    total_lines: int = 0

    def add(self, language: str, lines: int) -> None:
        if lines < 0:
            raise ValueError(f"line count must be non-negative, got {lines}")
        self.stats[language] = self.stats.get(language, 0) + lines
        self.total_lines += lines


@dataclass(frozen=True, slots=True)
class AnalysisSuccess:
    """A completed line count for one repository."""

    stats: dict[str, int]
    total_lines: int
    kind: Literal["success"] = "success"

    @classmethod
    def from_tally(cls, tally: LanguageTally) -> AnalysisSuccess:
        return cls(stats=dict(tally.stats), total_lines=tally.total_lines)


@dataclass(frozen=True, slots=True)
class AnalysisFailure:
    """A recorded failure, kept so known-bad repositories short-circuit."""

    message: str
    kind: Literal["failure"] = "failure"


AnalysisOutcome = Union[AnalysisSuccess, AnalysisFailure]
