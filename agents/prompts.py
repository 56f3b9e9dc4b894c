from typing import List, Optional, Set

from agents.diff_agent import render_diff, render_file_list
from models import PullRequest, ReviewFile

WALKTHROUGH_PROMPT = """You are an experienced code reviewer guiding a colleague through a pull request.

Write a walkthrough that explains the change in the order a reviewer should read it:
new types and helpers first, then the core logic, then removals, tests, wiring and imports last.
Every hunk in the diff below MUST be cited by at least one step. Hunks are identified by the
file path and the zero-based number in their "@@ hunk N" header.

Explain why each change exists and how it connects to the rest of the PR; do not restate what
the code does line by line.

Return ONLY valid JSON (no markdown, no commentary):
{{
  "overview": "1-3 short paragraphs",
  "steps": [
    {{
      "title": "Short step title",
      "explanation": "1-4 sentences",
      "hunks": [{{"file": "path/to/file", "hunk_index": 0}}]
    }}
  ]
}}

PR Title: {title}

PR Description:
{description}

Files Changed:
{file_list}

Unified Diff:
{diff}
"""

ANALYSIS_PROMPT = """You are an expert code reviewer helping a developer review a pull request efficiently.

1. State the goal of the PR and rate its overall risk with a confidence score from 1 to 5
   (5 = trivially safe such as deletions or renames, 1 = complex logic on critical paths).
2. List abstractions (types, classes, modules) the PR removes and the ones it introduces.
3. Order EVERY hunk for review: new abstractions, critical changes, removed abstractions,
   tests, wiring, imports. Give each hunk a confidence (1-5), a category
   (new, critical, removed, test, wiring, imports) and, for non-trivial hunks only,
   a short context explaining why the change was made.

Return ONLY valid JSON (no markdown, no commentary):
{{
  "goal": "What this PR accomplishes",
  "confidence": 4,
  "confidence_reason": "Why",
  "removed_abstractions": ["Name - reason"],
  "new_abstractions": ["Name - reason"],
  "hunk_order": [
    {{"file": "path/to/file", "hunk_index": 0, "confidence": 3, "category": "critical", "context": "Why"}}
  ]
}}

PR Title: {title}

PR Description:
{description}

Files Changed:
{file_list}

Unified Diff:
{diff}
"""

BACKFILL_PROMPT = """You are continuing a pull request walkthrough. The hunks below were not covered by
the earlier steps. Write additional steps so that EVERY hunk below is cited by at least one step.
Hunks are identified by file path and the zero-based number in their "@@ hunk N" header.

Return ONLY valid JSON (no markdown, no commentary):
{{
  "overview": "One sentence on what these remaining changes have in common",
  "steps": [
    {{
      "title": "Short step title",
      "explanation": "1-4 sentences",
      "hunks": [{{"file": "path/to/file", "hunk_index": 0}}]
    }}
  ]
}}

PR Title: {title}

Uncovered hunks:
{diff}
"""

CODE_WALKTHROUGH_PROMPT = """You are an assistant running inside a git repository at: {root}

User request:
{request}

Rules:
- Read files directly from disk using repo-relative paths.
- Only use git-tracked files; ignore untracked, build and vendored files.
- Do not invent files, APIs or behavior that are not in the repository.
- Give a concise overview and an ordered walkthrough.
- Use 1-based, inclusive line numbers for anchors.

Seed context (may be empty):
{seed}

Return ONLY valid JSON (no markdown, no commentary):
{{
  "overview": "1-3 short paragraphs",
  "steps": [
    {{
      "title": "Short step title",
      "explanation": "1-4 sentences",
      "anchors": [{{"file": "path/to/file", "start_line": 1, "end_line": 10}}]
    }}
  ]
}}

Anchors may be empty for high-level steps but the field must be present.
"""


def _title(pr: Optional[PullRequest]) -> str:
    return pr.title if pr and pr.title else "Unknown"


def _description(pr: Optional[PullRequest]) -> str:
    if pr and pr.description:
        return pr.description
    return "(No description provided)"


def build_walkthrough_prompt(pr: Optional[PullRequest], files: List[ReviewFile]) -> str:
    return WALKTHROUGH_PROMPT.format(
        title=_title(pr),
        description=_description(pr),
        file_list=render_file_list(files),
        diff=render_diff(files),
    )


def build_analysis_prompt(pr: Optional[PullRequest], files: List[ReviewFile]) -> str:
    return ANALYSIS_PROMPT.format(
        title=_title(pr),
        description=_description(pr),
        file_list=render_file_list(files),
        diff=render_diff(files),
    )


def build_backfill_prompt(pr: Optional[PullRequest], files: List[ReviewFile], missing: Set[str]) -> str:
    return BACKFILL_PROMPT.format(title=_title(pr), diff=render_diff(files, only=missing))


def build_code_walkthrough_prompt(
    root: str,
    request: str,
    seed_file: Optional[str] = None,
    seed_start_line: Optional[int] = None,
    seed_end_line: Optional[int] = None,
    seed_snippet: Optional[str] = None,
) -> str:
    seed_lines = []
    if seed_file:
        seed_lines.append(f"File: {seed_file}")
    if seed_start_line is not None and seed_end_line is not None:
        seed_lines.append(f"Lines: {seed_start_line}-{seed_end_line}")
    if seed_snippet:
        seed_lines.append("Snippet:")
        seed_lines.append(seed_snippet)
    seed = "\n".join(seed_lines) if seed_lines else "None."
    return CODE_WALKTHROUGH_PROMPT.format(root=root, request=request, seed=seed)
