# utils/git_client.py
from pathlib import Path
from typing import Optional, Tuple

import git  # GitPython


def working_tree_diff(repo_path: str = ".") -> Tuple[str, str]:
    """Return (git root, `git diff HEAD` text) for the repository at *repo_path*."""
    repo = git.Repo(repo_path, search_parent_directories=True)
    diff_txt: str = repo.git.diff("HEAD")
    return repo.working_tree_dir, diff_txt


def read_worktree_file(git_root: str, path: str) -> Optional[str]:
    """Current on-disk text of a tracked file, or None if it is gone."""
    full_path = Path(git_root) / path
    if not full_path.is_file():
        return None
    return full_path.read_text(encoding="utf-8", errors="replace")
