"""Next/previous change targets, in file order or in narrative order."""
import logging
from typing import Callable, Dict, List, Optional

from models import Comment, Narrative, NavTarget, ReviewFile
from position import resolve_comment

logger = logging.getLogger(__name__)

StopsFn = Callable[[ReviewFile], List[NavTarget]]


def build_directed_sequence(files: List[ReviewFile], narrative: Optional[Narrative]) -> List[NavTarget]:
    """Flatten a narrative's hunk citations into a navigation order.

    Each hunk appears once, at its first citation. Citations of hunks that do
    not exist in ``files`` are skipped.
    """
    if narrative is None:
        return []

    files_by_path = {f.path: f for f in files}
    sequence: List[NavTarget] = []
    seen_hunks = set()
    seen_lines = set()
    for step in narrative.steps:
        for ref in step.hunks:
            if ref.key in seen_hunks:
                continue
            seen_hunks.add(ref.key)

            review_file = files_by_path.get(ref.file)
            hunk = review_file.hunk(ref.hunk_index) if review_file else None
            if hunk is None:
                logger.debug(f"Skipping citation of missing hunk {ref.key}")
                continue

            line = hunk.first_change_line
            if (ref.file, line) in seen_lines:
                continue
            seen_lines.add((ref.file, line))
            sequence.append(NavTarget(file=ref.file, line=line, hunk_index=ref.hunk_index))
    return sequence


def _block_stops(review_file: ReviewFile) -> List[NavTarget]:
    stops: Dict[int, NavTarget] = {}
    for hunk in review_file.hunks:
        for block in hunk.blocks:
            line = block.first_change_line
            if line not in stops:
                stops[line] = NavTarget(file=review_file.path, line=line, hunk_index=hunk.index)
    return [stops[line] for line in sorted(stops)]


class Navigator:
    """Computes navigation targets over one review.

    Without a narrative every change block is a stop, in file-list order. With
    a narrative the stops follow its citation order; a cursor that is not on a
    cited hunk takes one positional step and directed order resumes from
    wherever that lands.
    """

    def __init__(
        self,
        files: List[ReviewFile],
        narrative: Optional[Narrative] = None,
        comments: Optional[List[Comment]] = None,
        wrap: bool = True,
    ):
        self.files = files
        self.files_by_path = {f.path: f for f in files}
        self.comments = comments or []
        self.wrap = wrap
        self.sequence = build_directed_sequence(files, narrative)

    @classmethod
    def for_session(cls, session, wrap: bool = True) -> "Navigator":
        return cls(session.files, narrative=session.narrative, comments=session.comments, wrap=wrap)

    @property
    def directed(self) -> bool:
        return bool(self.sequence)

    # ------------------------------------------------------------------
    # positional traversal, shared by changes and comments
    # ------------------------------------------------------------------

    def _file_index(self, path: Optional[str]) -> Optional[int]:
        for i, f in enumerate(self.files):
            if f.path == path:
                return i
        return None

    def _first_overall(self, stops_fn: StopsFn, wrapped: bool = False) -> Optional[NavTarget]:
        for f in self.files:
            stops = stops_fn(f)
            if stops:
                return stops[0].model_copy(update={"wrapped": wrapped})
        return None

    def _last_overall(self, stops_fn: StopsFn, wrapped: bool = False) -> Optional[NavTarget]:
        for f in reversed(self.files):
            stops = stops_fn(f)
            if stops:
                return stops[-1].model_copy(update={"wrapped": wrapped})
        return None

    def _positional_next(self, stops_fn: StopsFn, path: Optional[str], line: int) -> Optional[NavTarget]:
        idx = self._file_index(path)
        if idx is None:
            return self._first_overall(stops_fn)

        for stop in stops_fn(self.files[idx]):
            if stop.line > line:
                return stop
        for f in self.files[idx + 1:]:
            stops = stops_fn(f)
            if stops:
                return stops[0]
        if self.wrap:
            return self._first_overall(stops_fn, wrapped=True)
        return None

    def _positional_prev(self, stops_fn: StopsFn, path: Optional[str], line: int) -> Optional[NavTarget]:
        idx = self._file_index(path)
        if idx is None:
            return self._last_overall(stops_fn)

        for stop in reversed(stops_fn(self.files[idx])):
            if stop.line < line:
                return stop
        for f in reversed(self.files[:idx]):
            stops = stops_fn(f)
            if stops:
                return stops[-1]
        if self.wrap:
            return self._last_overall(stops_fn, wrapped=True)
        return None

    # ------------------------------------------------------------------
    # directed traversal
    # ------------------------------------------------------------------

    def _sequence_position(self, path: Optional[str], line: int) -> Optional[int]:
        review_file = self.files_by_path.get(path) if path else None
        if review_file is None:
            return None
        for i, item in enumerate(self.sequence):
            if item.file != path:
                continue
            hunk = review_file.hunk(item.hunk_index)
            if hunk is not None and hunk.contains_line(line):
                return i
        for i, item in enumerate(self.sequence):
            if item.file == path and item.line == line:
                return i
        return None

    # ------------------------------------------------------------------
    # public operations
    # ------------------------------------------------------------------

    def next(self, path: Optional[str], line: int) -> Optional[NavTarget]:
        """Target after the cursor, or None to hold position."""
        if not self.directed:
            return self._positional_next(_block_stops, path, line)

        pos = self._sequence_position(path, line)
        if pos is None:
            return self._positional_next(_block_stops, path, line)
        if pos + 1 < len(self.sequence):
            return self.sequence[pos + 1]
        if self.wrap:
            return self.sequence[0].model_copy(update={"wrapped": True})
        return None

    def prev(self, path: Optional[str], line: int) -> Optional[NavTarget]:
        if not self.directed:
            return self._positional_prev(_block_stops, path, line)

        pos = self._sequence_position(path, line)
        if pos is None:
            return self._positional_prev(_block_stops, path, line)
        if pos > 0:
            return self.sequence[pos - 1]
        if self.wrap:
            return self.sequence[-1].model_copy(update={"wrapped": True})
        return None

    def first(self) -> Optional[NavTarget]:
        if self.directed:
            return self.sequence[0]
        return self._first_overall(_block_stops)

    def last(self) -> Optional[NavTarget]:
        if self.directed:
            return self.sequence[-1]
        return self._last_overall(_block_stops)

    # ------------------------------------------------------------------
    # comments
    # ------------------------------------------------------------------

    def _comment_stops(self, review_file: ReviewFile) -> List[NavTarget]:
        lines = set()
        for comment in self.comments:
            if comment.path != review_file.path or comment.is_reply:
                continue
            display = resolve_comment(review_file.change_blocks, comment.line, comment.side, review_file.line_count)
            if display is not None:
                lines.add(display)
        return [NavTarget(file=review_file.path, line=line) for line in sorted(lines)]

    def next_comment(self, path: Optional[str], line: int) -> Optional[NavTarget]:
        return self._positional_next(self._comment_stops, path, line)

    def prev_comment(self, path: Optional[str], line: int) -> Optional[NavTarget]:
        return self._positional_prev(self._comment_stops, path, line)
