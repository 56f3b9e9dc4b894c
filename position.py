"""Map comments and old-content overlays onto rows of the new file.

Everything here is pure: the same inputs always give the same answer and the
review model is never touched. Comment positions are 1-based display lines,
overlay anchors are 0-based buffer rows.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from models import (
    AnchorPosition,
    ChangeBlock,
    Comment,
    CommentPosition,
    DeletionGroup,
    ReviewFile,
    Side,
)

logger = logging.getLogger(__name__)


def _buffer_last_line(line_count: Optional[int]) -> Optional[int]:
    # an empty buffer still shows one (blank) line
    if line_count is None:
        return None
    return max(line_count, 1)


def map_old_line(blocks: Iterable[ChangeBlock], old_line: int) -> Optional[int]:
    for block in blocks:
        for mapping in block.old_to_new:
            if mapping.old_line == old_line:
                return mapping.new_line
    return None


def resolve_comment(
    blocks: Iterable[ChangeBlock],
    line: Optional[int],
    side: Side,
    line_count: Optional[int] = None,
) -> Optional[int]:
    """Return the new-file line a comment should be shown on, or None to drop it.

    LEFT comments are only shown when their old line is tracked by some
    block's ``old_to_new``; anything else refers to content outside every
    hunk and is not guessed at.
    """
    if line is None or line < 1:
        return None

    if side == "LEFT":
        display = map_old_line(blocks, line)
        if display is None:
            logger.debug(f"Dropping LEFT comment on old line {line}: no mapping")
            return None
    else:
        display = line

    last = _buffer_last_line(line_count)
    if last is not None and display > last:
        return None
    return display


def resolve_comment_span(
    blocks: List[ChangeBlock],
    comment: Comment,
    line_count: Optional[int] = None,
) -> Optional[Tuple[int, int]]:
    """Resolve a (possibly multi-line) comment to its (start, end) display lines."""
    end = resolve_comment(blocks, comment.line, comment.side, line_count)
    if end is None:
        return None
    if comment.start_line is None:
        return end, end
    start = resolve_comment(blocks, comment.start_line, comment.start_side or comment.side, line_count)
    if start is None or start > end:
        return end, end
    return start, end


def _anchor_for_line(line: int, eof_clamped: bool, line_count: Optional[int]) -> AnchorPosition:
    row = max(line - 1, 0)
    insert_above = not eof_clamped
    if line_count is not None:
        if line_count == 0:
            return AnchorPosition(row=0, insert_above=False)
        if row >= line_count:
            row = line_count - 1
            insert_above = False
    return AnchorPosition(row=row, insert_above=insert_above)


def resolve_group_anchor(group: DeletionGroup, line_count: Optional[int] = None) -> AnchorPosition:
    return _anchor_for_line(group.anchor_line, group.eof_clamped, line_count)


def resolve_group_anchors(block: ChangeBlock, line_count: Optional[int] = None) -> List[AnchorPosition]:
    """One independent overlay position per deletion group, in group order."""
    return [resolve_group_anchor(group, line_count) for group in block.deletion_groups]


def resolve_anchor(block: ChangeBlock, line_count: Optional[int] = None) -> AnchorPosition:
    """Where the "show old content" overlay for a block goes."""
    if block.kind == "change" and block.added_lines:
        return _anchor_for_line(block.added_lines[0], False, line_count)
    if block.deletion_groups:
        return resolve_group_anchor(block.deletion_groups[0], line_count)
    if block.added_lines:
        return _anchor_for_line(block.added_lines[0], False, line_count)
    return _anchor_for_line(block.start_line, False, line_count)


def find_comment_position(review_file: ReviewFile, cursor_line: int) -> CommentPosition:
    """Pick the (line, side) a new comment written at ``cursor_line`` should target.

    A cursor on an added line comments on the new file. A cursor on the row
    where removed content is anchored comments on the first removed line.
    """
    for block in review_file.change_blocks:
        if cursor_line in block.added_lines:
            return CommentPosition(line=cursor_line, side="RIGHT")
        for group in block.deletion_groups:
            if group.anchor_line == cursor_line and group.old_line_numbers:
                return CommentPosition(line=group.old_line_numbers[0], side="LEFT")
    return CommentPosition(line=cursor_line, side="RIGHT")
