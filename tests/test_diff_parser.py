import pytest

from diff_parser import parse_file_patch, parse_unified_diff, split_file_chunks
from errors import DiffParseErrors
from conftest import TWO_FILE_DIFF


def test_parse_multi_file_diff():
    result = parse_unified_diff(TWO_FILE_DIFF)

    assert result.ok
    assert [f.path for f in result.files] == ["a.py", "b.py"]
    a, b = result.files
    assert a.status == "modified"
    assert a.additions == 2
    assert a.deletions == 1
    assert len(a.hunks) == 2
    assert a.hunks[1].old_start == 10
    assert a.hunks[1].new_start == 11
    assert [l.kind for l in a.hunks[1].lines] == [" ", "-", "+", " "]
    assert len(b.hunks) == 1


def test_line_numbers_follow_both_sides():
    result = parse_unified_diff(TWO_FILE_DIFF)
    lines = result.files[0].hunks[1].lines

    removed = lines[1]
    added = lines[2]
    assert removed.value == "a11"
    assert removed.old_line_no == 11
    assert removed.new_line_no is None
    assert added.value == "a11b"
    assert added.new_line_no == 12
    assert added.old_line_no is None


def test_new_and_deleted_files():
    diff = (
        "diff --git a/new.py b/new.py\n"
        "new file mode 100644\n"
        "index 0000000..abc1234\n"
        "--- /dev/null\n"
        "+++ b/new.py\n"
        "@@ -0,0 +1,2 @@\n"
        "+x\n"
        "+y\n"
        "diff --git a/old.py b/old.py\n"
        "deleted file mode 100644\n"
        "index abc1234..0000000\n"
        "--- a/old.py\n"
        "+++ /dev/null\n"
        "@@ -1,2 +0,0 @@\n"
        "-x\n"
        "-y\n"
    )
    result = parse_unified_diff(diff)

    assert result.ok
    new, old = result.files
    assert new.path == "new.py"
    assert new.status == "added"
    assert new.additions == 2
    assert old.path == "old.py"
    assert old.status == "deleted"
    assert old.deletions == 2


def test_malformed_file_does_not_abort_siblings():
    diff = (
        "--- a/good1.py\n"           # 1
        "+++ b/good1.py\n"           # 2
        "@@ -1 +1 @@\n"              # 3
        "-a\n"                       # 4
        "+b\n"                       # 5
        "--- a/bad.py\n"             # 6
        "+++ b/bad.py\n"             # 7
        "@@ -x,1 +1,1 @@\n"          # 8
        "-a\n"                       # 9
        "+b\n"                       # 10
        "--- a/good2.py\n"           # 11
        "+++ b/good2.py\n"           # 12
        "@@ -1 +1 @@\n"              # 13
        "-c\n"                       # 14
        "+d\n"                       # 15
    )
    result = parse_unified_diff(diff)

    assert [f.path for f in result.files] == ["good1.py", "good2.py"]
    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.path == "bad.py"
    assert error.line_number == 8
    assert "malformed hunk header" in error.reason


def test_raise_for_errors_reports_everything():
    diff = (
        "--- a/one.py\n"
        "+++ b/one.py\n"
        "@@ -1,z +1 @@\n"
        "-a\n"
        "--- a/two.py\n"
        "+++ b/two.py\n"
        "@@ garbage @@\n"
        "+b\n"
    )
    result = parse_unified_diff(diff)

    assert result.files == []
    with pytest.raises(DiffParseErrors) as exc:
        result.raise_for_errors()
    assert [e.path for e in exc.value.errors] == ["one.py", "two.py"]
    assert "2 file(s)" in str(exc.value)


def test_hunk_without_file_markers_is_an_error():
    result = parse_unified_diff("@@ -1 +1 @@\n-a\n+b\n")

    assert result.files == []
    assert len(result.errors) == 1
    assert result.errors[0].path is None
    assert "file markers" in result.errors[0].reason


def test_body_line_that_looks_like_a_header_does_not_split_the_file():
    diff = (
        "--- a/sql.txt\n"
        "+++ b/sql.txt\n"
        "@@ -1,2 +1,2 @@\n"
        "--- a comment\n"
        "+++ not a header\n"
        " tail\n"
        "--- a/next.txt\n"
        "+++ b/next.txt\n"
        "@@ -1 +1 @@\n"
        "-x\n"
        "+y\n"
    )
    chunks = list(split_file_chunks(diff))

    assert [first for first, _ in chunks] == [1, 7]
    assert len(chunks[0][1]) == 6


def test_no_newline_marker_is_ignored():
    result = parse_unified_diff(
        "--- a/f.txt\n"
        "+++ b/f.txt\n"
        "@@ -1 +1 @@\n"
        "-old line\n"
        "+new line\n"
        "\\ No newline at end of file\n"
    )

    assert result.ok
    assert [l.kind for l in result.files[0].hunks[0].lines] == ["-", "+"]


def test_form_feed_inside_a_line_is_content():
    file_diff = parse_file_patch("f.txt", "@@ -1,2 +1,2 @@\n a\x0cb\n-old\n+new")

    lines = file_diff.hunks[0].lines
    assert [l.kind for l in lines] == [" ", "-", "+"]
    assert lines[0].value == "a\x0cb"

    result = parse_unified_diff("--- a/f.txt\n+++ b/f.txt\n@@ -1 +1 @@\n-x\x0cy\n+z\n")
    assert result.ok
    assert result.files[0].hunks[0].lines[0].value == "x\x0cy"


def test_parse_file_patch_without_headers():
    file_diff = parse_file_patch("src/x.py", "@@ -1,2 +1,2 @@\n-old\n+new\n ctx", "modified")

    assert file_diff.path == "src/x.py"
    assert file_diff.status == "modified"
    assert len(file_diff.hunks) == 1
    assert [l.kind for l in file_diff.hunks[0].lines] == ["-", "+", " "]


def test_empty_diff():
    result = parse_unified_diff("")
    assert result.ok
    assert result.files == []
