from typing import List, Optional


class ReviewError(Exception):
    """Base class for errors raised by the review model."""


class DiffParseError(ReviewError):
    """A malformed section of a unified diff, reported per file."""

    def __init__(self, path: Optional[str], line_number: Optional[int], reason: str):
        self.path = path
        self.line_number = line_number
        self.reason = reason
        where = path or "<unknown file>"
        if line_number is not None:
            where = f"{where}:{line_number}"
        super().__init__(f"{where}: {reason}")


class DiffParseErrors(ReviewError):
    """Every DiffParseError collected while parsing one diff."""

    def __init__(self, errors: List[DiffParseError]):
        self.errors = list(errors)
        summary = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{len(self.errors)} file(s) failed to parse: {summary}")


class ModelInvariantViolation(ReviewError):
    pass


class NarrativeParseError(ReviewError):
    """The generation function returned something that is not a usable narrative."""
