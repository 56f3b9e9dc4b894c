"""Narratives that are guaranteed to cite every hunk of a review.

The generation function is called at most twice, one call after the other:
a full draft, then a backfill restricted to whatever the draft missed. Any
hunk still uncited after that gets a local placeholder step, so full coverage
never depends on what the model returns.
"""
import logging
from typing import Awaitable, Callable, List, Literal, Optional, Tuple

from agents import llm_client
from agents.prompts import (
    build_analysis_prompt,
    build_backfill_prompt,
    build_code_walkthrough_prompt,
    build_walkthrough_prompt,
)
from agents.writer_agent import parse_analysis, parse_code_walkthrough, parse_walkthrough
from errors import NarrativeParseError
from models import HunkRef, Narrative, PullRequest, ReviewFile, WalkthroughStep

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str], Awaitable[str]]
Flavour = Literal["analysis", "walkthrough"]


def all_hunk_refs(files: List[ReviewFile]) -> List[HunkRef]:
    return [HunkRef(file=f.path, hunk_index=h.index) for f in files for h in f.hunks]


def uncovered_hunks(files: List[ReviewFile], narrative: Narrative) -> List[HunkRef]:
    """Hunks of ``files`` that no step of ``narrative`` cites, in review order."""
    cited = {ref.key for ref in narrative.cited_refs()}
    return [ref for ref in all_hunk_refs(files) if ref.key not in cited]


def placeholder_step(review_file: ReviewFile, hunk_index: int) -> WalkthroughStep:
    hunk = review_file.hunk(hunk_index)
    span = f" (lines {hunk.start_line}-{hunk.end_line})" if hunk else ""
    return WalkthroughStep(
        title=f"uncovered change: {review_file.path}",
        explanation=f"Hunk {hunk_index}{span} was not described by the generated walkthrough.",
        hunks=[HunkRef(file=review_file.path, hunk_index=hunk_index)],
        placeholder=True,
    )


class NarrativeGenerator:
    def __init__(self, generate: Optional[GenerateFn] = None):
        self.generate = generate or llm_client.generate

    async def _attempt(self, stage: str, prompt: str, parse) -> Optional[Narrative]:
        try:
            raw = await self.generate(prompt)
        except Exception as e:
            logger.warning(f"{stage}: generation failed: {e}")
            return None
        try:
            return parse(raw)
        except NarrativeParseError as e:
            logger.warning(f"{stage}: unusable response: {e}")
            return None

    async def narrate(
        self,
        files: List[ReviewFile],
        pr: Optional[PullRequest] = None,
        flavour: Flavour = "walkthrough",
    ) -> Narrative:
        """Draft, check coverage, backfill, then fill any remaining gaps locally."""
        if flavour == "analysis":
            draft = await self._attempt("draft", build_analysis_prompt(pr, files), parse_analysis)
        else:
            draft = await self._attempt("draft", build_walkthrough_prompt(pr, files), parse_walkthrough)

        narrative = draft or Narrative(kind=flavour, overview="")
        missing = uncovered_hunks(files, narrative)
        if not missing:
            return narrative

        logger.info(f"Draft left {len(missing)} hunk(s) uncited, requesting backfill")
        backfill = await self._attempt(
            "backfill",
            build_backfill_prompt(pr, files, {ref.key for ref in missing}),
            parse_walkthrough,
        )
        if backfill is not None:
            narrative = narrative.model_copy(update={"steps": narrative.steps + backfill.steps})
            if not narrative.overview:
                narrative.overview = backfill.overview

        missing = uncovered_hunks(files, narrative)
        if missing:
            logger.warning(f"Adding {len(missing)} placeholder step(s) for uncited hunks")
            files_by_path = {f.path: f for f in files}
            placeholders = [placeholder_step(files_by_path[ref.file], ref.hunk_index) for ref in missing]
            narrative = narrative.model_copy(update={"steps": narrative.steps + placeholders})
        return narrative

    async def narrate_session(self, store, flavour: Flavour = "walkthrough") -> Optional[Narrative]:
        """Narrate the active session and attach the result if it is still current."""
        session = store.session
        if session is None:
            return None
        generation = session.generation
        narrative = await self.narrate(session.files, pr=session.pr, flavour=flavour)
        if not store.set_narrative(generation, narrative):
            return None
        return narrative

    async def code_walkthrough(
        self,
        root: str,
        request: str,
        seed_file: Optional[str] = None,
        seed_start_line: Optional[int] = None,
        seed_end_line: Optional[int] = None,
        seed_snippet: Optional[str] = None,
    ) -> Tuple[Optional[Narrative], Optional[str]]:
        """Walk through arbitrary code; steps cite line ranges instead of hunks."""
        prompt = build_code_walkthrough_prompt(root, request, seed_file, seed_start_line, seed_end_line, seed_snippet)
        try:
            raw = await self.generate(prompt)
        except Exception as e:
            logger.warning(f"code walkthrough: generation failed: {e}")
            return None, f"generation failed: {e}"
        try:
            narrative = parse_code_walkthrough(raw)
        except NarrativeParseError as e:
            return None, str(e)
        narrative.prompt = request
        narrative.root = root
        return narrative, None
