"""Compile raw diff hunks into the addressable review model.

Line numbers are 1-based new-file coordinates throughout. A deletion is
anchored to the new-file line that follows the removed run; runs at the end
of the file are clamped onto the last line and flagged so overlays render
below it instead of above.
"""
import logging
from typing import List, Optional

from errors import ModelInvariantViolation
from models import (
    ChangeBlock,
    DeletionGroup,
    FileDiff,
    Hunk,
    OldToNewMap,
    RawHunk,
    ReviewFile,
    count_lines,
)

logger = logging.getLogger(__name__)


class _BlockBuilder:
    """Accumulates one contiguous run of +/- lines."""

    def __init__(self, line_count: Optional[int]):
        self.line_count = line_count
        self.start_line: Optional[int] = None
        self.end_line: Optional[int] = None
        self.added_lines: List[int] = []
        self.changed_lines: List[int] = []
        self.deletion_groups: List[DeletionGroup] = []
        self.old_to_new: List[OldToNewMap] = []
        self.after_deletion = False
        self.last_raw_anchor: Optional[int] = None

    def _clamp(self, line: int):
        if self.line_count is not None and line > self.line_count:
            return max(self.line_count, 1), True
        return max(line, 1), False

    def _touch(self, line: int) -> None:
        if self.start_line is None:
            self.start_line = line
        self.end_line = line

    def add_deletion(self, raw_anchor: int, content: str, old_line: int) -> None:
        anchor, clamped = self._clamp(raw_anchor)
        self._touch(anchor)
        # group by the unclamped anchor; clamped groups may share a row
        last = self.deletion_groups[-1] if self.deletion_groups else None
        if last is not None and self.last_raw_anchor == raw_anchor:
            last.old_lines.append(content)
            last.old_line_numbers.append(old_line)
        else:
            self.deletion_groups.append(DeletionGroup(
                anchor_line=anchor,
                old_lines=[content],
                old_line_numbers=[old_line],
                eof_clamped=clamped,
            ))
        self.old_to_new.append(OldToNewMap(old_line=old_line, new_line=anchor))
        self.last_raw_anchor = raw_anchor
        self.after_deletion = True

    def add_addition(self, new_line: int) -> None:
        self._touch(new_line)
        self.added_lines.append(new_line)
        if self.after_deletion:
            self.changed_lines.append(new_line)

    def build(self) -> Optional[ChangeBlock]:
        if self.start_line is None:
            return None
        has_additions = bool(self.added_lines)
        has_deletions = bool(self.deletion_groups)
        if has_additions and has_deletions:
            kind = "change"
        elif has_additions:
            kind = "add"
        else:
            kind = "delete"
        return ChangeBlock(
            start_line=self.start_line,
            end_line=self.end_line,
            kind=kind,
            added_lines=self.added_lines,
            changed_lines=self.changed_lines,
            deletion_groups=self.deletion_groups,
            old_to_new=sorted(self.old_to_new, key=lambda m: m.old_line),
        )


def build_blocks(raw: RawHunk, line_count: Optional[int]) -> List[ChangeBlock]:
    """Split one raw hunk into change blocks, breaking at context lines."""
    # a zero-length side starts *after* the line the header names
    new_line = raw.new_start + 1 if raw.new_count == 0 else raw.new_start
    old_line = raw.old_start + 1 if raw.old_count == 0 else raw.old_start

    blocks: List[ChangeBlock] = []
    builder = _BlockBuilder(line_count)
    for line in raw.lines:
        if line.kind == "-":
            old_no = line.old_line_no if line.old_line_no is not None else old_line
            builder.add_deletion(new_line, line.value, old_no)
            old_line = old_no + 1
        elif line.kind == "+":
            new_no = line.new_line_no if line.new_line_no is not None else new_line
            builder.add_addition(new_no)
            new_line = new_no + 1
        else:
            block = builder.build()
            if block is not None:
                blocks.append(block)
            builder = _BlockBuilder(line_count)
            new_line += 1
            old_line += 1

    block = builder.build()
    if block is not None:
        blocks.append(block)
    return blocks


def _aggregate(index: int, raw: RawHunk, blocks: List[ChangeBlock]) -> Hunk:
    added = [n for b in blocks for n in b.added_lines]
    groups = [g for b in blocks for g in b.deletion_groups]
    kinds = {b.kind for b in blocks}
    if kinds == {"add"}:
        kind = "add"
    elif kinds == {"delete"}:
        kind = "delete"
    else:
        kind = "change"
    return Hunk(
        index=index,
        start_line=blocks[0].start_line,
        end_line=max(b.end_line for b in blocks),
        kind=kind,
        added_lines=added,
        changed_lines=[n for b in blocks for n in b.changed_lines],
        deletion_groups=groups,
        old_to_new=sorted((m for b in blocks for m in b.old_to_new), key=lambda m: m.old_line),
        old_start=raw.old_start,
        old_count=raw.old_count,
        new_start=raw.new_start,
        new_count=raw.new_count,
        section_header=raw.section_header,
        blocks=blocks,
        lines=raw.lines,
    )


def build_review_file(file_diff: FileDiff, content: Optional[str] = None) -> ReviewFile:
    """Compile one file's raw hunks against its current (new-file) text.

    Deleted files always compile against an empty new file. When ``content``
    is None for any other file the line count is unknown and nothing is
    clamped to end-of-file.
    """
    if content is None and file_diff.status == "deleted":
        content = ""
    line_count = count_lines(content) if content is not None else None

    hunks: List[Hunk] = []
    for raw in file_diff.hunks:
        blocks = build_blocks(raw, line_count)
        if not blocks:
            continue
        hunks.append(_aggregate(len(hunks), raw, blocks))

    review_file = ReviewFile(
        path=file_diff.path,
        status=file_diff.status,
        old_path=file_diff.old_path,
        content=content,
        additions=file_diff.additions,
        deletions=file_diff.deletions,
        hunks=hunks,
    )
    validate_review_file(review_file)
    return review_file


def build_review_files(file_diffs: List[FileDiff], contents: dict) -> List[ReviewFile]:
    """Build every file that has at least one change; contents maps path -> text."""
    files = []
    for file_diff in file_diffs:
        review_file = build_review_file(file_diff, contents.get(file_diff.path))
        if review_file.hunks:
            files.append(review_file)
        else:
            logger.debug(f"No change blocks in {file_diff.path}, leaving it out of the review")
    return files


def _check_block(path: str, block: ChangeBlock) -> None:
    if block.start_line > block.end_line:
        raise ModelInvariantViolation(f"{path}: block starts after it ends ({block.start_line} > {block.end_line})")

    for prev, cur in zip(block.added_lines, block.added_lines[1:]):
        if cur <= prev:
            raise ModelInvariantViolation(f"{path}: added lines not strictly increasing at {cur}")
    for n in block.added_lines:
        if not block.start_line <= n <= block.end_line:
            raise ModelInvariantViolation(f"{path}: added line {n} outside block {block.start_line}-{block.end_line}")

    anchors = [g.anchor_line for g in block.deletion_groups]
    if anchors != sorted(anchors):
        raise ModelInvariantViolation(f"{path}: deletion groups out of anchor order")

    grouped = [n for g in block.deletion_groups for n in g.old_line_numbers]
    mapped = [m.old_line for m in block.old_to_new]
    if sorted(grouped) != mapped or len(set(mapped)) != len(mapped):
        raise ModelInvariantViolation(f"{path}: old_to_new does not match deletion groups")


def validate_review_file(review_file: ReviewFile) -> None:
    """Assert the structural invariants of a compiled file."""
    prev_end = None
    for hunk in review_file.hunks:
        _check_block(review_file.path, hunk)
        for block in hunk.blocks:
            _check_block(review_file.path, block)
        if prev_end is not None and hunk.start_line < prev_end:
            raise ModelInvariantViolation(f"{review_file.path}: hunk {hunk.index} overlaps the previous hunk")
        prev_end = hunk.end_line
