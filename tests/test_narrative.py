import asyncio
import json

import pytest

from agents.narrative_agent import NarrativeGenerator, uncovered_hunks
from agents.writer_agent import parse_analysis, parse_code_walkthrough, parse_walkthrough
from conftest import FakeGenerate
from errors import NarrativeParseError
from models import ReviewData
from session import SessionStore


def _walkthrough(*steps, overview="What changed"):
    return json.dumps({
        "overview": overview,
        "steps": [
            {
                "title": f"step {i}",
                "explanation": "because",
                "hunks": [{"file": f, "hunk_index": h} for f, h in refs],
            }
            for i, refs in enumerate(steps)
        ],
    })


def _cited(narrative):
    return {ref.key for ref in narrative.cited_refs()}


ALL_KEYS = {"c.py:0", "c.py:1", "c.py:2"}


class TestCoverage:
    def test_failed_backfill_leaves_a_placeholder_for_the_gap(self, three_hunk_files):
        generate = FakeGenerate(
            _walkthrough([("c.py", 0)], [("c.py", 1)]),
            RuntimeError("quota exceeded"),
        )

        narrative = asyncio.run(NarrativeGenerator(generate).narrate(three_hunk_files))

        assert len(generate.prompts) == 2
        assert "@@ hunk 2 (" in generate.prompts[1]
        assert "@@ hunk 0 (" not in generate.prompts[1]
        assert _cited(narrative) == ALL_KEYS
        placeholders = [s for s in narrative.steps if s.placeholder]
        assert len(placeholders) == 1
        assert [r.key for r in placeholders[0].hunks] == ["c.py:2"]
        assert placeholders[0].title == "uncovered change: c.py"
        assert narrative.overview == "What changed"

    def test_successful_backfill_is_appended(self, three_hunk_files):
        generate = FakeGenerate(
            _walkthrough([("c.py", 0), ("c.py", 1)]),
            _walkthrough([("c.py", 2)], overview="ignored"),
        )

        narrative = asyncio.run(NarrativeGenerator(generate).narrate(three_hunk_files))

        assert [s.title for s in narrative.steps] == ["step 0", "step 0"]
        assert not any(s.placeholder for s in narrative.steps)
        assert _cited(narrative) == ALL_KEYS
        assert narrative.overview == "What changed"

    def test_complete_draft_needs_one_call(self, three_hunk_files):
        generate = FakeGenerate(_walkthrough([("c.py", 0), ("c.py", 1), ("c.py", 2)]))

        narrative = asyncio.run(NarrativeGenerator(generate).narrate(three_hunk_files))

        assert len(generate.prompts) == 1
        assert uncovered_hunks(three_hunk_files, narrative) == []

    @pytest.mark.parametrize("responses", [
        ("not json at all", "still not json"),
        (RuntimeError("boom"), RuntimeError("boom")),
        ('{"overview": "x"}', '{"steps": []}'),
    ])
    def test_every_hunk_is_cited_whatever_the_model_returns(self, three_hunk_files, responses):
        generate = FakeGenerate(*responses)

        narrative = asyncio.run(NarrativeGenerator(generate).narrate(three_hunk_files))

        assert _cited(narrative) == ALL_KEYS
        assert all(s.placeholder for s in narrative.steps)
        assert len(narrative.steps) == 3

    def test_citations_of_unknown_hunks_do_not_count(self, three_hunk_files):
        generate = FakeGenerate(
            _walkthrough([("c.py", 0), ("c.py", 9), ("other.py", 1)]),
            "garbage",
        )

        narrative = asyncio.run(NarrativeGenerator(generate).narrate(three_hunk_files))

        placeholder_keys = {r.key for s in narrative.steps if s.placeholder for r in s.hunks}
        assert placeholder_keys == {"c.py:1", "c.py:2"}

    def test_analysis_flavour(self, three_hunk_files):
        generate = FakeGenerate(json.dumps({
            "goal": "Add n-lines",
            "confidence": 4,
            "confidence_reason": "small",
            "removed_abstractions": [],
            "new_abstractions": ["N - helper"],
            "hunk_order": [
                {"file": "c.py", "hunk_index": 2, "confidence": 2, "category": "critical", "context": "core"},
                {"file": "c.py", "hunk_index": 0, "confidence": 5, "category": "imports"},
                {"file": "c.py", "hunk_index": 1, "confidence": 4, "category": "test", "summary": "covers it"},
            ],
        }))

        narrative = asyncio.run(NarrativeGenerator(generate).narrate(three_hunk_files, flavour="analysis"))

        assert len(generate.prompts) == 1
        assert narrative.kind == "analysis"
        assert narrative.overview == "Add n-lines"
        assert narrative.confidence == 4
        assert narrative.new_abstractions == ["N - helper"]
        assert [s.hunks[0].key for s in narrative.steps] == ["c.py:2", "c.py:0", "c.py:1"]
        assert [s.category for s in narrative.steps] == ["critical", "imports", "test"]
        assert narrative.steps[0].explanation == "core"
        assert narrative.steps[1].explanation == ""
        assert narrative.steps[2].explanation == "covers it"


class TestParsing:
    def test_fenced_json_is_accepted(self):
        text = "Here you go:\n```json\n" + _walkthrough([("a.py", 0)]) + "\n```\n"

        narrative = parse_walkthrough(text)
        assert narrative.steps[0].hunks[0].key == "a.py:0"

    def test_missing_field_is_named(self):
        payload = json.dumps({"overview": "x", "steps": [{"explanation": "y", "hunks": []}]})

        with pytest.raises(NarrativeParseError, match=r"steps\.0\.title"):
            parse_walkthrough(payload)

    def test_wrong_type_is_rejected(self):
        payload = json.dumps({
            "overview": "x",
            "steps": [{"title": "t", "explanation": "y", "hunks": [{"file": "a.py", "hunk_index": "0"}]}],
        })

        with pytest.raises(NarrativeParseError, match="hunk_index"):
            parse_walkthrough(payload)

    def test_non_object_is_rejected(self):
        with pytest.raises(NarrativeParseError):
            parse_walkthrough("[1, 2, 3]")
        with pytest.raises(NarrativeParseError):
            parse_walkthrough("")

    def test_analysis_item_confidence_out_of_range(self):
        payload = json.dumps({
            "goal": "g",
            "hunk_order": [{"file": "a.py", "hunk_index": 0, "confidence": 9, "category": "new"}],
        })

        with pytest.raises(NarrativeParseError, match="confidence"):
            parse_analysis(payload)

    def test_analysis_accepts_fractional_confidence(self):
        payload = json.dumps({
            "goal": "g",
            "confidence": 3.0,
            "confidence_reason": "medium",
            "hunk_order": [
                {"file": "a.py", "hunk_index": 0, "confidence": 4.0, "category": "new"},
                {"file": "a.py", "hunk_index": 1, "confidence": 2, "category": "test"},
            ],
        })

        narrative = parse_analysis(payload)
        assert narrative.confidence == 3
        assert narrative.confidence_reason == "medium"
        assert [s.confidence for s in narrative.steps] == [4, 2]

    def test_analysis_item_confidence_must_be_a_number(self):
        payload = json.dumps({
            "goal": "g",
            "hunk_order": [{"file": "a.py", "hunk_index": 0, "confidence": "high", "category": "new"}],
        })

        with pytest.raises(NarrativeParseError, match="confidence"):
            parse_analysis(payload)

    def test_analysis_pr_confidence_out_of_range_is_ignored(self):
        payload = json.dumps({
            "goal": "g",
            "confidence": 9,
            "confidence_reason": "?",
            "removed_abstractions": ["Old", 3],
            "hunk_order": [],
        })

        narrative = parse_analysis(payload)
        assert narrative.confidence is None
        assert narrative.confidence_reason is None
        assert narrative.removed_abstractions == ["Old"]

    def test_code_walkthrough_requires_anchors(self):
        payload = json.dumps({"overview": "x", "steps": [{"title": "t", "explanation": "e"}]})

        with pytest.raises(NarrativeParseError, match="anchors"):
            parse_code_walkthrough(payload)


class TestSessions:
    def test_narrative_for_a_replaced_session_is_discarded(self, three_hunk_files):
        store = SessionStore()
        store.open(ReviewData(files=three_hunk_files), review_type="local")

        class ReplacingGenerate(FakeGenerate):
            async def __call__(self, prompt):
                store.open(ReviewData(files=three_hunk_files), review_type="local")
                return await super().__call__(prompt)

        generate = ReplacingGenerate(_walkthrough([("c.py", 0), ("c.py", 1), ("c.py", 2)]))
        result = asyncio.run(NarrativeGenerator(generate).narrate_session(store))

        assert result is None
        assert store.session.narrative is None

    def test_narrative_is_attached_to_the_current_session(self, three_hunk_files):
        store = SessionStore()
        store.open(ReviewData(files=three_hunk_files), review_type="local")
        generate = FakeGenerate(_walkthrough([("c.py", 0), ("c.py", 1), ("c.py", 2)]))

        result = asyncio.run(NarrativeGenerator(generate).narrate_session(store))

        assert result is not None
        assert store.session.narrative == result

    def test_no_session(self):
        assert asyncio.run(NarrativeGenerator(FakeGenerate()).narrate_session(SessionStore())) is None


class TestCodeWalkthrough:
    def test_anchored_steps(self):
        generate = FakeGenerate(json.dumps({
            "overview": "How requests flow",
            "steps": [
                {"title": "Entry", "explanation": "starts here",
                 "anchors": [{"file": "main.py", "start_line": 10, "end_line": 20}]},
                {"title": "Big picture", "explanation": "no code", "anchors": []},
            ],
        }))

        narrative, error = asyncio.run(NarrativeGenerator(generate).code_walkthrough(
            "/repo", "how do requests flow?", seed_file="main.py", seed_start_line=10, seed_end_line=12,
        ))

        assert error is None
        assert narrative.prompt == "how do requests flow?"
        assert narrative.root == "/repo"
        assert narrative.steps[0].anchors[0].start_line == 10
        assert "File: main.py" in generate.prompts[0]
        assert "Lines: 10-12" in generate.prompts[0]

    def test_generation_failure_is_reported(self):
        narrative, error = asyncio.run(
            NarrativeGenerator(FakeGenerate(RuntimeError("offline"))).code_walkthrough("/repo", "why?")
        )

        assert narrative is None
        assert "offline" in error
