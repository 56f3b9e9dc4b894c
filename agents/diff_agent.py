from typing import Iterable, List, Optional, Set

from models import Hunk, ReviewFile

STATUS_ICONS = {"added": "+", "deleted": "-", "modified": "~", "renamed": "R"}


def diff_agent_summarize(files: List[ReviewFile]) -> List[dict]:
    summaries = []
    for f in files:
        summaries.append({
            "file": f.path,
            "status": f.status,
            "additions": f.additions,
            "deletions": f.deletions,
            "hunk_count": len(f.hunks),
        })
    return summaries


def render_file_list(files: List[ReviewFile]) -> str:
    lines = []
    for s in diff_agent_summarize(files):
        icon = STATUS_ICONS.get(s["status"], "?")
        lines.append(f"[{icon}] {s['file']} (+{s['additions']}/-{s['deletions']}, {s['hunk_count']} hunks)")
    return "\n".join(lines)


def render_hunk(hunk: Hunk) -> str:
    header = f"@@ hunk {hunk.index} (new lines {hunk.start_line}-{hunk.end_line}) @@"
    if hunk.section_header:
        header += f" {hunk.section_header}"
    body = [f"{line.kind}{line.value}" for line in hunk.lines]
    return "\n".join([header] + body)


def render_diff(files: Iterable[ReviewFile], only: Optional[Set[str]] = None) -> str:
    """Render the review as a diff whose hunk headers carry their hunk_index.

    When ``only`` is given it holds "path:index" keys and every other hunk
    is left out.
    """
    parts = []
    for f in files:
        hunks = [h for h in f.hunks if only is None or f"{f.path}:{h.index}" in only]
        if not hunks:
            continue
        parts.append(f"--- a/{f.old_path or f.path}\n+++ b/{f.path}")
        for h in hunks:
            parts.append(render_hunk(h))
    return "\n\n".join(parts)
