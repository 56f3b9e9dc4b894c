"""Adapters between external collaborators and the review model.

Everything async in here reports failure as ``(None, reason)`` instead of
raising, so transport and auth problems never reach the model layer.
"""
import asyncio
import logging
import re
from typing import Dict, List, Optional, Tuple

import git
import httpx

import config
from diff_parser import parse_file_patch, parse_unified_diff
from errors import DiffParseError
from models import Comment, CommentPosition, FileStatus, PRRef, PullRequest, ReviewData, ReviewFile
from review_builder import build_review_file, build_review_files
from utils import git_client, github_client

logger = logging.getLogger(__name__)

PR_URL_RE = re.compile(r"github\.com/([^/]+)/([^/]+)/pull/(\d+)")

GITHUB_STATUSES: Dict[str, FileStatus] = {
    "added": "added",
    "removed": "deleted",
    "modified": "modified",
    "renamed": "renamed",
    "changed": "modified",
    "copied": "added",
}


def parse_pr_url(url: str) -> Optional[PRRef]:
    m = PR_URL_RE.search(url)
    if not m:
        return None
    return PRRef(owner=m.group(1), repo=m.group(2), number=int(m.group(3)))


def comment_from_github(data: dict) -> Comment:
    return Comment(
        id=data["id"],
        path=data.get("path", ""),
        line=data.get("line"),
        side=data.get("side") or "RIGHT",
        start_line=data.get("start_line"),
        start_side=data.get("start_side"),
        body=data.get("body") or "",
        author=(data.get("user") or {}).get("login", ""),
        created_at=data.get("created_at") or "",
        html_url=data.get("html_url"),
        in_reply_to_id=data.get("in_reply_to_id"),
    )


def pull_request_from_github(data: dict) -> PullRequest:
    return PullRequest(
        number=data["number"],
        title=data.get("title") or "",
        url=data.get("html_url") or "",
        head_sha=data["head"]["sha"],
        base_ref=data["base"]["ref"],
        head_ref=data["head"]["ref"],
        author=(data.get("user") or {}).get("login", ""),
        state=data.get("state") or "",
        description=data.get("body"),
    )


def build_review_from_diff(diff_text: str, contents: Dict[str, str], skip_noise: bool = False) -> ReviewData:
    """Compile diff text plus current file texts into review data."""
    result = parse_unified_diff(diff_text)
    file_diffs = result.files
    if skip_noise:
        file_diffs = [f for f in file_diffs if not config.is_noise_file(f.path)]
    return ReviewData(
        files=build_review_files(file_diffs, contents),
        parse_errors=[str(e) for e in result.errors],
    )


# -----------------------------------------------------------
# Hosted pull requests
# -----------------------------------------------------------

async def _review_file_from_github(ref: PRRef, head_sha: str, data: dict) -> Optional[ReviewFile]:
    patch = data.get("patch")
    if not patch:
        # binary or oversized files carry no patch
        return None
    status = GITHUB_STATUSES.get(data.get("status"), "modified")
    path = data["filename"]
    file_diff = parse_file_patch(path, patch, status)
    file_diff.old_path = data.get("previous_filename")
    file_diff.additions = data.get("additions", file_diff.additions)
    file_diff.deletions = data.get("deletions", file_diff.deletions)

    content = None
    if status != "deleted":
        content = await github_client.fetch_file_content(ref.owner, ref.repo, path, head_sha)
    return build_review_file(file_diff, content)


async def fetch_pr_review(ref: PRRef) -> Tuple[Optional[ReviewData], Optional[str]]:
    try:
        pr = pull_request_from_github(await github_client.fetch_pull_request(ref.owner, ref.repo, ref.number))
        raw_files = await github_client.fetch_pr_files(ref.owner, ref.repo, ref.number)
    except (httpx.HTTPError, KeyError) as e:
        return None, f"Failed to fetch PR metadata from GitHub: {e}"

    files: List[ReviewFile] = []
    parse_errors: List[str] = []
    for data in raw_files:
        try:
            review_file = await _review_file_from_github(ref, pr.head_sha, data)
        except DiffParseError as e:
            logger.warning(f"Skipping {data.get('filename')}: {e}")
            parse_errors.append(str(e))
            continue
        except httpx.HTTPError as e:
            return None, f"Failed to fetch {data.get('filename')} at {pr.head_sha}: {e}"
        if review_file is not None and review_file.hunks:
            files.append(review_file)

    comments, error = await fetch_comments(ref)
    if error:
        return None, error

    viewer = None
    if github_client.token_available():
        try:
            viewer = await github_client.fetch_viewer()
        except httpx.HTTPError as e:
            logger.warning(f"Could not resolve the authenticated user: {e}")

    return ReviewData(pr=pr, files=files, comments=comments, viewer=viewer, parse_errors=parse_errors), None


async def fetch_comments(ref: PRRef) -> Tuple[Optional[List[Comment]], Optional[str]]:
    try:
        raw = await github_client.fetch_review_comments(ref.owner, ref.repo, ref.number)
    except httpx.HTTPError as e:
        return None, f"Failed to fetch review comments: {e}"
    return [comment_from_github(c) for c in raw], None


async def submit_comment(
    ref: PRRef,
    commit_id: str,
    path: str,
    position: CommentPosition,
    body: str,
    start: Optional[CommentPosition] = None,
) -> Tuple[Optional[Comment], Optional[str]]:
    try:
        data = await github_client.create_review_comment(
            ref.owner,
            ref.repo,
            ref.number,
            commit_id,
            path,
            body,
            line=position.line,
            side=position.side,
            start_line=start.line if start else None,
            start_side=start.side if start else None,
        )
    except httpx.HTTPError as e:
        return None, f"Failed to submit comment: {e}"
    return comment_from_github(data), None


async def reply_to_comment(ref: PRRef, comment_id: int, body: str) -> Tuple[Optional[Comment], Optional[str]]:
    try:
        data = await github_client.reply_to_review_comment(ref.owner, ref.repo, ref.number, comment_id, body)
    except httpx.HTTPError as e:
        return None, f"Failed to reply to comment {comment_id}: {e}"
    return comment_from_github(data), None


# -----------------------------------------------------------
# Local working tree
# -----------------------------------------------------------

def _local_review(repo_path: str) -> ReviewData:
    git_root, diff_text = git_client.working_tree_diff(repo_path)
    result = parse_unified_diff(diff_text)
    file_diffs = result.files
    if config.SKIP_NOISE_FILES:
        file_diffs = [f for f in file_diffs if not config.is_noise_file(f.path)]
    contents = {}
    for f in file_diffs:
        if f.status != "deleted":
            text = git_client.read_worktree_file(git_root, f.path)
            if text is not None:
                contents[f.path] = text
    return ReviewData(
        files=build_review_files(file_diffs, contents),
        git_root=git_root,
        parse_errors=[str(e) for e in result.errors],
    )


async def local_diff_review(repo_path: str = ".") -> Tuple[Optional[ReviewData], Optional[str]]:
    try:
        data = await asyncio.to_thread(_local_review, repo_path)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
        return None, f"Not a git repository: {e}"
    except git.GitCommandError as e:
        return None, f"Failed to get git diff: {e}"
    return data, None
