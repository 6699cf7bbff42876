# src/bamsummarize/errors.py
from __future__ import annotations
from typing import Optional

# Process exit codes per failing phase. Typer keeps 2 for usage errors.
EXIT_CODES = {
    "configure": 3,
    "summarize": 4,
    "merge": 5,
    "sort": 6,
    "merge-sorted": 7,
}


class BamSummarizeError(Exception):
    """Base error; carries the phase (and level, if any) it happened in."""

    default_phase = "summarize"

    def __init__(self, message: str, phase: Optional[str] = None, level: Optional[int] = None):
        super().__init__(message)
        self.phase = phase or self.default_phase
        self.level = level

    @property
    def exit_code(self) -> int:
        return EXIT_CODES.get(self.phase, 1)

    def __str__(self) -> str:
        msg = super().__str__()
        where = self.phase if self.level is None else f"{self.phase}, level {self.level}"
        return f"[{where}] {msg}"


class ConfigurationError(BamSummarizeError):
    default_phase = "configure"


class ExtractionError(BamSummarizeError):
    """Malformed alignment record or summary line; fatal to the task reading it."""


class SamplingError(BamSummarizeError):
    pass


class JobExecutionError(BamSummarizeError):
    pass


class MergeError(BamSummarizeError):
    default_phase = "merge"

    def __init__(self, message: str, path=None, phase: Optional[str] = None, level: Optional[int] = None):
        super().__init__(message, phase=phase, level=level)
        self.path = path
