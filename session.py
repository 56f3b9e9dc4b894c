import itertools
import logging
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, PrivateAttr

from models import Comment, Narrative, PRRef, PullRequest, ReviewData, ReviewFile

logger = logging.getLogger(__name__)

_generations = itertools.count(1)


class ReviewSession(BaseModel):
    """Everything one open review owns.

    Files are immutable once the session is built; comments are appended and
    never rewritten. A re-sync builds a new session instead of mutating this
    one.
    """

    generation: int
    review_type: Literal["pr", "local"] = "pr"
    ref: Optional[PRRef] = None
    pr: Optional[PullRequest] = None
    viewer: Optional[str] = None
    git_root: Optional[str] = None
    files: List[ReviewFile] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    narrative: Optional[Narrative] = None

    _files_by_path: Dict[str, ReviewFile] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._files_by_path = {f.path: f for f in self.files}

    def file(self, path: str) -> Optional[ReviewFile]:
        return self._files_by_path.get(path)

    def comments_for_file(self, path: str) -> List[Comment]:
        return [c for c in self.comments if c.path == path]

    def add_comment(self, comment: Comment) -> None:
        self.comments.append(comment)

    def threads_for_file(self, path: str) -> Dict[int, List[Comment]]:
        """Root comment id -> [root, *replies] for one file."""
        threads: Dict[int, List[Comment]] = {}
        file_comments = self.comments_for_file(path)
        for c in file_comments:
            if not c.is_reply:
                threads[c.id] = [c]
        for c in file_comments:
            if c.is_reply and c.in_reply_to_id in threads:
                threads[c.in_reply_to_id].append(c)
        return threads


class SessionStore:
    """Holds the single active review session."""

    def __init__(self):
        self._session: Optional[ReviewSession] = None

    @property
    def session(self) -> Optional[ReviewSession]:
        return self._session

    def open(self, data: ReviewData, review_type: str = "pr", ref: Optional[PRRef] = None) -> ReviewSession:
        if self._session is not None:
            logger.info(f"Replacing active review (generation {self._session.generation})")
        self._session = ReviewSession(
            generation=next(_generations),
            review_type=review_type,
            ref=ref,
            pr=data.pr,
            viewer=data.viewer,
            git_root=data.git_root,
            files=data.files,
            comments=list(data.comments),
        )
        logger.info(
            f"Opened {review_type} review with {len(data.files)} files "
            f"(generation {self._session.generation})"
        )
        return self._session

    def replace(self, data: ReviewData) -> ReviewSession:
        """Swap in freshly fetched data for the active review (sync)."""
        current = self._session
        if current is None:
            return self.open(data)
        return self.open(data, review_type=current.review_type, ref=current.ref)

    def clear(self) -> None:
        if self._session is not None:
            logger.info(f"Closed review (generation {self._session.generation})")
        self._session = None

    def is_current(self, generation: int) -> bool:
        return self._session is not None and self._session.generation == generation

    def set_narrative(self, generation: int, narrative: Narrative) -> bool:
        """Attach a narrative unless the session it was built for is gone."""
        if not self.is_current(generation):
            logger.warning(f"Discarding narrative for stale review generation {generation}")
            return False
        self._session.narrative = narrative
        return True

    def add_comment(self, generation: int, comment: Comment) -> bool:
        if not self.is_current(generation):
            logger.warning(f"Discarding comment {comment.id} for stale review generation {generation}")
            return False
        self._session.add_comment(comment)
        return True
