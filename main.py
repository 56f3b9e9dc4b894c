import logging
from typing import Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import config
import sources
from agents.narrative_agent import NarrativeGenerator
from models import (
    AnchorPosition,
    Comment,
    CommentPosition,
    Narrative,
    NavTarget,
    PRRef,
    ReviewFile,
    Side,
)
from navigation import Navigator
from position import find_comment_position, resolve_anchor, resolve_comment_span, resolve_group_anchors
from session import ReviewSession, SessionStore

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="PR Walkthrough (review model service)")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.store = SessionStore()
app.state.generator = NarrativeGenerator()


class DiffInput(BaseModel):
    diff_text: str
    contents: Dict[str, str] = {}


class LocalInput(BaseModel):
    repo_path: str = "."


class PRInput(BaseModel):
    owner: Optional[str] = None
    repo: Optional[str] = None
    pr_number: Optional[int] = None
    url: Optional[str] = None


class NavigateInput(BaseModel):
    action: Literal["next", "prev", "first", "last", "next_comment", "prev_comment"]
    path: Optional[str] = None
    line: int = 0
    wrap: Optional[bool] = None


class NarrativeInput(BaseModel):
    flavour: Literal["analysis", "walkthrough"] = "walkthrough"


class CodeWalkthroughInput(BaseModel):
    request: str
    root: str = "."
    seed_file: Optional[str] = None
    seed_start_line: Optional[int] = None
    seed_end_line: Optional[int] = None
    seed_snippet: Optional[str] = None


class CommentInput(BaseModel):
    path: str
    line: int
    side: Side = "RIGHT"
    start_line: Optional[int] = None
    start_side: Optional[Side] = None
    body: str


class ReplyInput(BaseModel):
    body: str


class SessionSummary(BaseModel):
    generation: int
    review_type: str
    title: Optional[str] = None
    files: List[dict]
    comment_count: int
    has_narrative: bool
    parse_errors: List[str] = []


class CommentPlacement(BaseModel):
    comment_id: int
    start_line: int
    end_line: int
    reply_count: int = 0


class BlockAnchors(BaseModel):
    hunk_index: int
    start_line: int
    kind: str
    anchor: AnchorPosition
    groups: List[AnchorPosition]


def _store(request: Request) -> SessionStore:
    return request.app.state.store


def _session(request: Request) -> ReviewSession:
    session = _store(request).session
    if session is None:
        raise HTTPException(status_code=404, detail="No active review")
    return session


def _file(session: ReviewSession, path: str) -> ReviewFile:
    review_file = session.file(path)
    if review_file is None:
        raise HTTPException(status_code=404, detail=f"{path} is not part of the active review")
    return review_file


def _summary(session: ReviewSession, parse_errors: Optional[List[str]] = None) -> SessionSummary:
    return SessionSummary(
        generation=session.generation,
        review_type=session.review_type,
        title=session.pr.title if session.pr else None,
        files=[
            {"path": f.path, "status": f.status, "additions": f.additions,
             "deletions": f.deletions, "hunks": len(f.hunks)}
            for f in session.files
        ],
        comment_count=len(session.comments),
        has_narrative=session.narrative is not None,
        parse_errors=parse_errors or [],
    )


def _pr_ref(inp: PRInput) -> PRRef:
    if inp.url:
        ref = sources.parse_pr_url(inp.url)
        if ref is None:
            raise HTTPException(status_code=400, detail=f"Not a pull request URL: {inp.url}")
        return ref
    if not (inp.owner and inp.repo and inp.pr_number):
        raise HTTPException(status_code=400, detail="owner, repo and pr_number (or url) are required")
    return PRRef(owner=inp.owner, repo=inp.repo, number=inp.pr_number)


# -----------------------------------------------------------
# Opening, syncing and closing reviews
# -----------------------------------------------------------

@app.post("/review-diff", response_model=SessionSummary, summary="Open a review from a unified diff")
async def review_diff(inp: DiffInput, request: Request):
    data = sources.build_review_from_diff(inp.diff_text, inp.contents)
    if not data.files and data.parse_errors:
        raise HTTPException(status_code=400, detail="; ".join(data.parse_errors))
    session = _store(request).open(data, review_type="local")
    return _summary(session, data.parse_errors)


@app.post("/review-local", response_model=SessionSummary, summary="Open a review of the working tree")
async def review_local(inp: LocalInput, request: Request):
    data, error = await sources.local_diff_review(inp.repo_path)
    if error:
        raise HTTPException(status_code=502, detail=error)
    session = _store(request).open(data, review_type="local")
    return _summary(session, data.parse_errors)


@app.post("/review-pr", response_model=SessionSummary, summary="Open a review of a GitHub pull request")
async def review_pr(inp: PRInput, request: Request):
    ref = _pr_ref(inp)
    data, error = await sources.fetch_pr_review(ref)
    if error:
        raise HTTPException(status_code=502, detail=error)
    session = _store(request).open(data, review_type="pr", ref=ref)
    return _summary(session, data.parse_errors)


@app.post("/session/sync", response_model=SessionSummary)
async def sync_session(request: Request):
    session = _session(request)
    if session.review_type == "pr" and session.ref is not None:
        data, error = await sources.fetch_pr_review(session.ref)
    elif session.git_root:
        data, error = await sources.local_diff_review(session.git_root)
    else:
        raise HTTPException(status_code=400, detail="This review has no source to sync from")
    if error:
        raise HTTPException(status_code=502, detail=error)
    session = _store(request).replace(data)
    return _summary(session, data.parse_errors)


@app.get("/session", response_model=SessionSummary)
def get_session(request: Request):
    return _summary(_session(request))


@app.delete("/session")
def close_session(request: Request):
    _store(request).clear()
    return {"status": "closed"}


# -----------------------------------------------------------
# Queries for the presentation layer
# -----------------------------------------------------------

@app.get("/files/{path:path}/comments", response_model=List[CommentPlacement])
def comment_placements(path: str, request: Request):
    session = _session(request)
    review_file = _file(session, path)
    placements = []
    for root_id, thread in session.threads_for_file(path).items():
        span = resolve_comment_span(review_file.change_blocks, thread[0], review_file.line_count)
        if span is None:
            continue
        placements.append(CommentPlacement(
            comment_id=root_id,
            start_line=span[0],
            end_line=span[1],
            reply_count=len(thread) - 1,
        ))
    return placements


@app.get("/files/{path:path}/anchors", response_model=List[BlockAnchors])
def block_anchors(path: str, request: Request):
    review_file = _file(_session(request), path)
    anchors = []
    for hunk in review_file.hunks:
        for block in hunk.blocks:
            anchors.append(BlockAnchors(
                hunk_index=hunk.index,
                start_line=block.start_line,
                kind=block.kind,
                anchor=resolve_anchor(block, review_file.line_count),
                groups=resolve_group_anchors(block, review_file.line_count),
            ))
    return anchors


@app.get("/files/{path:path}/comment-position", response_model=CommentPosition)
def comment_position(path: str, line: int, request: Request):
    return find_comment_position(_file(_session(request), path), line)


@app.get("/files/{path:path}", response_model=ReviewFile)
def get_file(path: str, request: Request):
    return _file(_session(request), path)


@app.post("/navigate", response_model=Optional[NavTarget])
def navigate(inp: NavigateInput, request: Request):
    wrap = config.WRAP_NAVIGATION if inp.wrap is None else inp.wrap
    navigator = Navigator.for_session(_session(request), wrap=wrap)
    if inp.action == "first":
        return navigator.first()
    if inp.action == "last":
        return navigator.last()
    return getattr(navigator, inp.action)(inp.path, inp.line)


# -----------------------------------------------------------
# Narratives
# -----------------------------------------------------------

@app.post("/narrative", response_model=Narrative)
async def narrate(inp: NarrativeInput, request: Request):
    _session(request)
    narrative = await request.app.state.generator.narrate_session(_store(request), flavour=inp.flavour)
    if narrative is None:
        raise HTTPException(status_code=409, detail="The review changed while the narrative was generated")
    return narrative


@app.get("/narrative", response_model=Narrative)
def get_narrative(request: Request):
    session = _session(request)
    if session.narrative is None:
        raise HTTPException(status_code=404, detail="No narrative for the active review")
    return session.narrative


@app.post("/code-walkthrough", response_model=Narrative)
async def code_walkthrough(inp: CodeWalkthroughInput, request: Request):
    narrative, error = await request.app.state.generator.code_walkthrough(
        inp.root,
        inp.request,
        seed_file=inp.seed_file,
        seed_start_line=inp.seed_start_line,
        seed_end_line=inp.seed_end_line,
        seed_snippet=inp.seed_snippet,
    )
    if error:
        raise HTTPException(status_code=502, detail=error)
    return narrative


# -----------------------------------------------------------
# Comments
# -----------------------------------------------------------

def _require_pr(session: ReviewSession):
    if session.review_type != "pr" or session.ref is None or session.pr is None:
        raise HTTPException(status_code=400, detail="Comments can only be submitted on pull request reviews")


@app.post("/comments", response_model=Comment)
async def submit_comment(inp: CommentInput, request: Request):
    session = _session(request)
    _require_pr(session)
    _file(session, inp.path)
    start = None
    if inp.start_line is not None:
        start = CommentPosition(line=inp.start_line, side=inp.start_side or inp.side)
    comment, error = await sources.submit_comment(
        session.ref,
        session.pr.head_sha,
        inp.path,
        CommentPosition(line=inp.line, side=inp.side),
        inp.body,
        start=start,
    )
    if error:
        raise HTTPException(status_code=502, detail=error)
    _store(request).add_comment(session.generation, comment)
    return comment


@app.post("/comments/{comment_id}/replies", response_model=Comment)
async def reply(comment_id: int, inp: ReplyInput, request: Request):
    session = _session(request)
    _require_pr(session)
    comment, error = await sources.reply_to_comment(session.ref, comment_id, inp.body)
    if error:
        raise HTTPException(status_code=502, detail=error)
    _store(request).add_comment(session.generation, comment)
    return comment


@app.get("/")
def root():
    return {"status": "PR Walkthrough running", "git_integration": sources.github_client.token_available()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
