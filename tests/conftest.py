"""
Pytest configuration and shared fixtures.
"""
import sys
from pathlib import Path

import pytest

# Add the project root to the Python path for test imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from diff_parser import parse_unified_diff  # noqa: E402
from review_builder import build_review_files  # noqa: E402

TWO_FILE_DIFF = """\
diff --git a/a.py b/a.py
index 1111111..2222222 100644
--- a/a.py
+++ b/a.py
@@ -1,3 +1,4 @@
 a1
+a_new
 a2
 a3
@@ -10,3 +11,3 @@
 a10
-a11
+a11b
 a12
diff --git a/b.py b/b.py
index 3333333..4444444 100644
--- a/b.py
+++ b/b.py
@@ -1,4 +1,6 @@
 b1
+b_new1
 b2
+b_new2
 b3
 b4
"""

THREE_HUNK_DIFF = """\
--- a/c.py
+++ b/c.py
@@ -1,2 +1,3 @@
 c1
+n1
 c2
@@ -10,2 +11,3 @@
 c10
+n2
 c11
@@ -20,2 +22,3 @@
 c20
+n3
 c21
"""


class FakeGenerate:
    """Scripted stand-in for the narrative generation function."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    async def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise RuntimeError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def two_files():
    result = parse_unified_diff(TWO_FILE_DIFF)
    assert result.ok
    return build_review_files(result.files, {})


@pytest.fixture
def three_hunk_files():
    result = parse_unified_diff(THREE_HUNK_DIFF)
    assert result.ok
    return build_review_files(result.files, {})
