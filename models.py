from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional

ChangeKind = Literal["add", "delete", "change"]
FileStatus = Literal["added", "deleted", "modified", "renamed"]
Side = Literal["LEFT", "RIGHT"]
LineKind = Literal["+", "-", " "]


def count_lines(text: str) -> int:
    """Number of lines in a buffer, split on "\\n" only."""
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return len(lines)


# ---------------------------------------------------------------------------
# Raw diff (output of diff_parser)
# ---------------------------------------------------------------------------

class DiffLine(BaseModel):
    kind: LineKind
    value: str
    old_line_no: Optional[int] = None
    new_line_no: Optional[int] = None


class RawHunk(BaseModel):
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section_header: str = ""
    lines: List[DiffLine] = Field(default_factory=list)


class FileDiff(BaseModel):
    path: str
    old_path: Optional[str] = None
    status: FileStatus = "modified"
    additions: int = 0
    deletions: int = 0
    hunks: List[RawHunk] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Review model (output of review_builder)
# ---------------------------------------------------------------------------

class DeletionGroup(BaseModel):
    anchor_line: int
    old_lines: List[str] = Field(default_factory=list)
    old_line_numbers: List[int] = Field(default_factory=list)
    eof_clamped: bool = False


class OldToNewMap(BaseModel):
    old_line: int
    new_line: int


class ChangeBlock(BaseModel):
    start_line: int
    end_line: int
    kind: ChangeKind
    added_lines: List[int] = Field(default_factory=list)
    changed_lines: List[int] = Field(default_factory=list)
    deletion_groups: List[DeletionGroup] = Field(default_factory=list)
    old_to_new: List[OldToNewMap] = Field(default_factory=list)

    @property
    def first_change_line(self) -> int:
        """First new-file line a reviewer should land on for this block."""
        candidates = []
        if self.added_lines:
            candidates.append(self.added_lines[0])
        if self.deletion_groups:
            candidates.append(self.deletion_groups[0].anchor_line)
        return min(candidates) if candidates else self.start_line

    def contains_line(self, line: int) -> bool:
        if self.kind == "delete":
            # the cursor usually sits on the row above the removed content
            return self.start_line - 1 <= line <= self.end_line
        return self.start_line <= line <= self.end_line


class Hunk(ChangeBlock):
    """One `@@` section of a file's diff, aggregating its change blocks."""

    index: int
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section_header: str = ""
    blocks: List[ChangeBlock] = Field(default_factory=list)
    lines: List[DiffLine] = Field(default_factory=list)


class ReviewFile(BaseModel):
    path: str
    status: FileStatus = "modified"
    old_path: Optional[str] = None
    content: Optional[str] = None
    additions: int = 0
    deletions: int = 0
    hunks: List[Hunk] = Field(default_factory=list)

    @property
    def line_count(self) -> Optional[int]:
        """Number of lines in the new file, or None when its text is unknown."""
        if self.content is None:
            return None
        return count_lines(self.content)

    @property
    def change_blocks(self) -> List[ChangeBlock]:
        return [block for hunk in self.hunks for block in hunk.blocks]

    def hunk(self, index: int) -> Optional[Hunk]:
        if 0 <= index < len(self.hunks):
            return self.hunks[index]
        return None


class AnchorPosition(BaseModel):
    row: int  # zero-based buffer row
    insert_above: bool = True


class CommentPosition(BaseModel):
    line: int
    side: Side = "RIGHT"


# ---------------------------------------------------------------------------
# Pull request & comments
# ---------------------------------------------------------------------------

class PRRef(BaseModel):
    owner: str
    repo: str
    number: int


class PullRequest(BaseModel):
    number: int
    title: str
    url: str = ""
    head_sha: str = ""
    base_ref: str = ""
    head_ref: str = ""
    author: str = ""
    state: str = ""
    description: Optional[str] = None


class Comment(BaseModel):
    id: int
    path: str
    line: Optional[int] = None
    side: Side = "RIGHT"
    start_line: Optional[int] = None
    start_side: Optional[Side] = None
    body: str
    author: str = ""
    created_at: str = ""
    html_url: Optional[str] = None
    in_reply_to_id: Optional[int] = None

    @property
    def is_reply(self) -> bool:
        return self.in_reply_to_id is not None


class ReviewData(BaseModel):
    pr: Optional[PullRequest] = None
    files: List[ReviewFile] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    viewer: Optional[str] = None
    git_root: Optional[str] = None
    parse_errors: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Narratives
# ---------------------------------------------------------------------------

class HunkRef(BaseModel):
    file: str
    hunk_index: int

    @property
    def key(self) -> str:
        return f"{self.file}:{self.hunk_index}"


class LineAnchor(BaseModel):
    file: str
    start_line: int
    end_line: int


class WalkthroughStep(BaseModel):
    title: str
    explanation: str = ""
    hunks: List[HunkRef] = Field(default_factory=list)
    anchors: List[LineAnchor] = Field(default_factory=list)
    category: Optional[str] = None
    confidence: Optional[int] = None
    placeholder: bool = False


class Narrative(BaseModel):
    kind: Literal["analysis", "walkthrough"] = "walkthrough"
    overview: str = ""
    steps: List[WalkthroughStep] = Field(default_factory=list)
    confidence: Optional[int] = None
    confidence_reason: Optional[str] = None
    removed_abstractions: List[str] = Field(default_factory=list)
    new_abstractions: List[str] = Field(default_factory=list)
    prompt: Optional[str] = None
    root: Optional[str] = None

    def cited_refs(self) -> List[HunkRef]:
        return [ref for step in self.steps for ref in step.hunks]


class NavTarget(BaseModel):
    file: str
    line: int
    hunk_index: Optional[int] = None
    wrapped: bool = False


FileContents = Dict[str, str]
