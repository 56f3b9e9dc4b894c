# utils/github_client.py

import httpx

import config


def _headers(accept: str = "application/vnd.github+json") -> dict:
    headers = {
        "Accept": accept,
        "User-Agent": "PR-Walkthrough",
    }
    if config.GITHUB_TOKEN:
        headers["Authorization"] = f"token {config.GITHUB_TOKEN}"
    return headers


def _client(accept: str = "application/vnd.github+json") -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.GITHUB_API_BASE,
        timeout=config.GITHUB_TIMEOUT,
        headers=_headers(accept),
    )


def _raise_for_status(resp: httpx.Response):
    # Raise HTTP errors with full body description
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise httpx.HTTPStatusError(
            f"GitHub returned {resp.status_code}: {resp.text}",
            request=e.request,
            response=e.response
        )


async def _get_paginated(path: str, per_page: int = 100) -> list:
    items = []
    page = 1
    async with _client() as client:
        while True:
            resp = await client.get(path, params={"per_page": per_page, "page": page})
            _raise_for_status(resp)
            batch = resp.json()
            items.extend(batch)
            if len(batch) < per_page:
                return items
            page += 1


# -----------------------------------------------------------
# Pull request metadata and changed files
# -----------------------------------------------------------
async def fetch_pull_request(owner: str, repo: str, pr_number: int) -> dict:
    """
    Returns the raw pull request object (title, body, head/base refs, user...).
    """
    async with _client() as client:
        resp = await client.get(f"/repos/{owner}/{repo}/pulls/{pr_number}")
        _raise_for_status(resp)
        return resp.json()


async def fetch_pr_files(owner: str, repo: str, pr_number: int) -> list:
    """
    Return PR changed files including per-file patches.
    """
    return await _get_paginated(f"/repos/{owner}/{repo}/pulls/{pr_number}/files")


async def fetch_file_content(owner: str, repo: str, path: str, ref: str) -> str:
    """
    Returns the text of a file at a given commit.
    """
    async with _client(accept="application/vnd.github.raw") as client:
        resp = await client.get(f"/repos/{owner}/{repo}/contents/{path}", params={"ref": ref})
        _raise_for_status(resp)
        return resp.text


# -----------------------------------------------------------
# Review comments (inline)
# -----------------------------------------------------------
async def fetch_review_comments(owner: str, repo: str, pr_number: int) -> list:
    return await _get_paginated(f"/repos/{owner}/{repo}/pulls/{pr_number}/comments")


async def create_review_comment(
    owner: str,
    repo: str,
    pr_number: int,
    commit_id: str,
    path: str,
    body: str,
    line: int,
    side: str = "RIGHT",
    start_line: int = None,
    start_side: str = None,
) -> dict:
    """
    Posts an inline review comment anchored to a line of the diff.
    """
    payload = {
        "body": body,
        "commit_id": commit_id,
        "path": path,
        "line": line,
        "side": side,
    }
    if start_line is not None and start_line != line:
        payload["start_line"] = start_line
        payload["start_side"] = start_side or side

    async with _client() as client:
        resp = await client.post(f"/repos/{owner}/{repo}/pulls/{pr_number}/comments", json=payload)
        _raise_for_status(resp)
        return resp.json()


async def reply_to_review_comment(owner: str, repo: str, pr_number: int, comment_id: int, body: str) -> dict:
    url = f"/repos/{owner}/{repo}/pulls/{pr_number}/comments/{comment_id}/replies"
    async with _client() as client:
        resp = await client.post(url, json={"body": body})
        _raise_for_status(resp)
        return resp.json()


async def fetch_viewer() -> str:
    """
    Login of the authenticated user.
    """
    async with _client() as client:
        resp = await client.get("/user")
        _raise_for_status(resp)
        return resp.json().get("login", "")


def token_available():
    return bool(config.GITHUB_TOKEN)
