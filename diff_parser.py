import io
import logging
import re
from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field
from unidiff import PatchSet
from unidiff.constants import LINE_TYPE_ADDED, LINE_TYPE_CONTEXT, LINE_TYPE_REMOVED
from unidiff.errors import UnidiffParseError

from errors import DiffParseError, DiffParseErrors
from models import DiffLine, FileDiff, FileStatus, RawHunk

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")
GIT_HEADER_RE = re.compile(r"^diff --git a/(.+?) b/(.+)$")

DEV_NULL = "/dev/null"


class DiffParseResult(BaseModel):
    files: List[FileDiff] = Field(default_factory=list)
    errors: List[DiffParseError] = Field(default_factory=list)

    model_config = {"arbitrary_types_allowed": True}

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise DiffParseErrors(self.errors)


def _split_lines(text: str) -> List[str]:
    # only "\n" ends a diff line; form feeds and other separators are content
    return io.StringIO(text, newline="\n").readlines()


def _strip_prefix(path: str) -> str:
    if path.startswith("a/") or path.startswith("b/"):
        return path[2:]
    return path


def _header_path(line: str) -> Optional[str]:
    """Extract a file path from a `diff --git`, `---` or `+++` header line."""
    m = GIT_HEADER_RE.match(line)
    if m:
        return m.group(2)
    if line.startswith("--- ") or line.startswith("+++ "):
        path = line[4:].split("\t")[0].strip()
        if path == DEV_NULL:
            return None
        return _strip_prefix(path)
    return None


def _skip_hunk_body(lines: List[str], i: int, old_left: int, new_left: int) -> int:
    """Return the index of the first line after a hunk body starting at ``i``."""
    while i < len(lines) and (old_left > 0 or new_left > 0):
        line = lines[i]
        if line.startswith("-"):
            old_left -= 1
        elif line.startswith("+"):
            new_left -= 1
        elif line.startswith(" ") or line == "":
            old_left -= 1
            new_left -= 1
        elif not line.startswith("\\"):
            break
        i += 1
    return i


def _file_starts(lines: List[str]) -> List[int]:
    starts = []
    in_git_header = False
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("diff --git "):
            starts.append(i)
            in_git_header = True
        elif line.startswith("@@"):
            in_git_header = False
            m = HUNK_HEADER_RE.match(line)
            if m:
                old_count = int(m.group(2)) if m.group(2) is not None else 1
                new_count = int(m.group(4)) if m.group(4) is not None else 1
                i = _skip_hunk_body(lines, i + 1, old_count, new_count)
                continue
        elif (
            not in_git_header
            and line.startswith("--- ")
            and i + 1 < len(lines)
            and lines[i + 1].startswith("+++ ")
        ):
            starts.append(i)
        i += 1
    return starts


def split_file_chunks(diff_text: str) -> Iterator[Tuple[int, List[str]]]:
    """Yield (first line number, lines) for every file section of a diff."""
    raw_lines = _split_lines(diff_text)
    lines = [l.rstrip("\r\n") for l in raw_lines]
    starts = _file_starts(lines)

    # hunks ahead of the first file marker still need to be reported
    lead_end = starts[0] if starts else len(lines)
    if any(l.startswith("@@") for l in lines[:lead_end]):
        starts.insert(0, 0)

    for n, start in enumerate(starts):
        end = starts[n + 1] if n + 1 < len(starts) else len(lines)
        yield start + 1, raw_lines[start:end]


def _chunk_path(chunk: List[str]) -> Optional[str]:
    old_path = None
    for raw in chunk:
        line = raw.rstrip("\r\n")
        if line.startswith("@@"):
            break
        if line.startswith("+++ "):
            path = _header_path(line)
            if path:
                return path
        elif line.startswith("--- ") or line.startswith("diff --git "):
            old_path = _header_path(line) or old_path
    return old_path


def _validate_chunk(path: Optional[str], first_line: int, chunk: List[str]) -> None:
    seen_target = False
    in_hunk = False
    for offset, raw in enumerate(chunk):
        line = raw.rstrip("\r\n")
        line_number = first_line + offset
        if line.startswith("+++ ") and not in_hunk:
            seen_target = True
        elif line.startswith("@@"):
            if not seen_target:
                raise DiffParseError(path, line_number, "hunk found before '---'/'+++' file markers")
            if not HUNK_HEADER_RE.match(line):
                raise DiffParseError(path, line_number, f"malformed hunk header: {line!r}")
            in_hunk = True


def _file_status(patched_file) -> FileStatus:
    if patched_file.is_added_file:
        return "added"
    if patched_file.is_removed_file:
        return "deleted"
    if patched_file.is_rename:
        return "renamed"
    return "modified"


def _convert_hunk(hunk) -> RawHunk:
    lines = []
    for line in hunk:
        if line.line_type == LINE_TYPE_ADDED:
            kind = "+"
        elif line.line_type == LINE_TYPE_REMOVED:
            kind = "-"
        elif line.line_type == LINE_TYPE_CONTEXT:
            kind = " "
        else:
            # "\ No newline at end of file"
            continue
        lines.append(DiffLine(
            kind=kind,
            value=line.value.rstrip("\r\n"),
            old_line_no=line.source_line_no,
            new_line_no=line.target_line_no,
        ))
    return RawHunk(
        old_start=hunk.source_start,
        old_count=hunk.source_length,
        new_start=hunk.target_start,
        new_count=hunk.target_length,
        section_header=(hunk.section_header or "").strip(),
        lines=lines,
    )


def _parse_chunk(path: Optional[str], first_line: int, chunk: List[str]) -> List[FileDiff]:
    _validate_chunk(path, first_line, chunk)
    try:
        patch = PatchSet(chunk)
    except UnidiffParseError as e:
        raise DiffParseError(path, first_line, str(e)) from e

    files = []
    for patched_file in patch:
        files.append(FileDiff(
            path=patched_file.path,
            old_path=_strip_prefix(patched_file.source_file) if patched_file.source_file != DEV_NULL else None,
            status=_file_status(patched_file),
            additions=patched_file.added,
            deletions=patched_file.removed,
            hunks=[_convert_hunk(h) for h in patched_file],
        ))
    return files


def parse_unified_diff(diff_text: str) -> DiffParseResult:
    """Parse a (possibly multi-file) unified diff.

    Every file section is parsed on its own so that one malformed file is
    reported in ``errors`` without losing its siblings.
    """
    result = DiffParseResult()
    for first_line, chunk in split_file_chunks(diff_text):
        path = _chunk_path(chunk)
        try:
            result.files.extend(_parse_chunk(path, first_line, chunk))
        except DiffParseError as e:
            logger.warning(f"Skipping unparseable diff section: {e}")
            result.errors.append(e)
    return result


def parse_file_patch(path: str, patch: str, status: Optional[FileStatus] = None) -> FileDiff:
    """Parse a headerless per-file patch, as returned by the GitHub files API."""
    header = f"--- a/{path}\n+++ b/{path}\n"
    chunk = _split_lines(header + patch)
    files = _parse_chunk(path, 1, chunk)
    if not files:
        return FileDiff(path=path, status=status or "modified")
    file_diff = files[0]
    file_diff.path = path
    if status:
        file_diff.status = status
    return file_diff
