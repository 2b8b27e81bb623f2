"""Decoding errors and Rust-style colored diagnostic rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from termshape.identifier import Identifier
    from termshape.source import Span


class Severity(Enum):
    ERROR = "error"


# ANSI color codes
_COLORS = {
    Severity.ERROR: "\033[1;31m",  # bold red
}
_BOLD = "\033[1m"
_BLUE = "\033[1;34m"
_RESET = "\033[0m"


@dataclass(frozen=True)
class DiagnosticLabel:
    """Points to a specific source location."""

    span: Span
    message: str


@dataclass
class Diagnostic:
    """A single diagnostic message with optional labels and notes."""

    severity: Severity
    code: str
    message: str
    labels: list[DiagnosticLabel] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


# ── Error taxonomy ───────────────────────────────────────────────


class DecodeError(Exception):
    """Base class for every failure raised while decoding a term.

    ``trail`` records the record keys and array indices the error
    unwound through, outermost first. It is diagnostic only and is not
    part of equality.
    """

    code = "D000"

    def __init__(self) -> None:
        super().__init__(str(self))
        self.trail: list[Identifier | int] = []

    def _payload(self) -> tuple:
        return ()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DecodeError):
            return NotImplemented
        return type(self) is type(other) and self._payload() == other._payload()

    def __hash__(self) -> int:
        return hash((type(self), self._payload()))

    def __repr__(self) -> str:
        args = ", ".join(repr(p) for p in self._payload())
        return f"{type(self).__name__}({args})"

    def within(self, step: Identifier | int) -> DecodeError:
        """Record that the error happened inside ``step``. Returns self."""
        self.trail.insert(0, step)
        return self

    def path(self) -> str:
        """Dotted location of the failure, e.g. ``.servers[2].port``."""
        parts: list[str] = []
        for step in self.trail:
            if isinstance(step, int):
                parts.append(f"[{step}]")
            else:
                parts.append(f".{step}")
        return "".join(parts)

    def to_diagnostic(self) -> Diagnostic:
        labels: list[DiagnosticLabel] = []
        notes: list[str] = []
        # The innermost key that knows where it was written.
        for step in reversed(self.trail):
            pos = getattr(step, "pos", None)
            if pos is not None:
                labels.append(DiagnosticLabel(pos, f"while decoding field `{step}`"))
                break
        if self.trail:
            notes.append(f"at {self.path()}")
        return Diagnostic(Severity.ERROR, self.code, str(self), labels, notes)


class InvalidType(DecodeError):
    code = "D001"

    def __init__(self, expected: str, occurred: str) -> None:
        self.expected = expected
        self.occurred = occurred
        super().__init__()

    def _payload(self) -> tuple:
        return (self.expected, self.occurred)

    def __str__(self) -> str:
        return f"invalid type: {self.occurred}, expected: {self.expected}"


class MissingValue(DecodeError):
    code = "D002"

    def __str__(self) -> str:
        return "missing value"


class EmptyMetaValue(DecodeError):
    code = "D003"

    def __str__(self) -> str:
        return "empty Metavalue"


class UnimplementedType(DecodeError):
    code = "D004"

    def __init__(self, occurred: str) -> None:
        self.occurred = occurred
        super().__init__()

    def _payload(self) -> tuple:
        return (self.occurred,)

    def __str__(self) -> str:
        return f"unimplemented conversion from type: {self.occurred}"


class InvalidRecordLength(DecodeError):
    """Fields were left over. ``length`` is the record's original size."""

    code = "D005"

    def __init__(self, length: int) -> None:
        self.length = length
        super().__init__()

    def _payload(self) -> tuple:
        return (self.length,)

    def __str__(self) -> str:
        return f"invalid record length, expected {self.length}"


class InvalidArrayLength(DecodeError):
    """Elements were left over. ``length`` is the array's original size."""

    code = "D006"

    def __init__(self, length: int) -> None:
        self.length = length
        super().__init__()

    def _payload(self) -> tuple:
        return (self.length,)

    def __str__(self) -> str:
        return f"invalid array length, expected {self.length}"


class OtherError(DecodeError):
    """Custom failure raised by a shape (missing field, unknown variant...)."""

    code = "D007"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__()

    def _payload(self) -> tuple:
        return (self.message,)

    def __str__(self) -> str:
        return self.message


# ── Rendering ────────────────────────────────────────────────────


class DiagnosticRenderer:
    """Renders diagnostics in Rust-style format with colors."""

    def __init__(self, *, color: bool = True) -> None:
        self.color = color
        self._file_cache: dict[str, list[str]] = {}

    def _c(self, code: str) -> str:
        return code if self.color else ""

    def _get_source_line(self, filename: str, line_num: int) -> str | None:
        """Load and cache source file, return the 1-indexed line."""
        if filename not in self._file_cache:
            try:
                path = Path(filename)
                if path.is_file():
                    self._file_cache[filename] = path.read_text().splitlines()
                else:
                    self._file_cache[filename] = []
            except OSError:
                self._file_cache[filename] = []
        lines = self._file_cache[filename]
        if 1 <= line_num <= len(lines):
            return lines[line_num - 1]
        return None

    def render(self, diag: Diagnostic) -> str:
        lines: list[str] = []
        sev = diag.severity
        color = _COLORS[sev]

        # Header: error[D001]: message
        lines.append(
            f"{self._c(color)}{sev.value}[{diag.code}]{self._c(_RESET)}"
            f"{self._c(_BOLD)}: {diag.message}{self._c(_RESET)}"
        )

        for label in diag.labels:
            span = label.span
            lines.append(f"  {self._c(_BLUE)}-->{self._c(_RESET)} {span}")
            lines.append(f"  {self._c(_BLUE)}   |{self._c(_RESET)}")

            source_line = self._get_source_line(span.file, span.start_line)
            if source_line is not None:
                gutter = f"{span.start_line:>4}"
                lines.append(
                    f"  {self._c(_BLUE)}{gutter} |{self._c(_RESET)} {source_line}"
                )
                if span.start_line == span.end_line:
                    caret_len = max(1, span.end_col - span.start_col + 1)
                    padding = " " * (span.start_col - 1)
                    lines.append(
                        f"  {self._c(_BLUE)}   |{self._c(_RESET)} "
                        f"{padding}{self._c(color)}{'^' * caret_len}{self._c(_RESET)}"
                    )

            if label.message:
                lines.append(
                    f"  {self._c(_BLUE)}   |{self._c(_RESET)}   "
                    f"{self._c(color)}{label.message}{self._c(_RESET)}"
                )

        for note in diag.notes:
            lines.append(f"  {self._c(_BLUE)}={self._c(_RESET)} note: {note}")

        return "\n".join(lines)
