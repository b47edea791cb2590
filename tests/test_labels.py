"""Tests for command label extraction."""

from portio.labels import extract_label


def test_empty_command_yields_empty_label():
    """Test an empty command gives an empty label."""
    assert extract_label("") == ""


def test_runtime_pattern_wins_over_generic_verb():
    """node matches before --watch is considered."""
    command = "/usr/bin/node /app/server.js --watch"
    label = extract_label(command)

    assert "node" in label
    # Whole command is within 20 chars before and 30 after the match
    assert label == command


def test_window_is_limited_around_match():
    """Test the label window around a match."""
    command = "/very/long/prefix/directory/structure/bin/vite --port 5173 --host 0.0.0.0 --strictPort --open"
    label = extract_label(command)
    start = command.index("vite")

    assert label == command[start - 20 : start + len("vite") + 30]


def test_matching_is_case_insensitive():
    """Test patterns match case-insensitively."""
    assert "Next" in extract_label("Next Server")


def test_framework_pattern():
    """Test framework names are matched."""
    assert extract_label("/opt/bin/gatsby develop") == "/opt/bin/gatsby develop"


def test_generic_verb_pattern():
    """Test generic verbs are matched."""
    label = extract_label("/usr/local/bin/myserver serve --port 9000")
    assert label == "/local/bin/myserver serve --port 9000"


def test_whitespace_is_collapsed():
    """Test whitespace runs collapse to one space."""
    assert extract_label("node    server.js\t--inspect") == "node server.js --inspect"


def test_fallback_uses_first_three_tokens():
    """Test the fallback label uses the first three tokens."""
    assert extract_label("/usr/sbin/sshd -D -o Port=22 -e") == "/usr/sbin/sshd -D -o"


def test_fallback_is_truncated():
    """Test the fallback label is truncated."""
    command = "/" + "x" * 80 + " -a -b"
    assert extract_label(command) == command[:50]


def test_word_boundaries_are_respected():
    """'nodejs' is not the runtime token 'node'."""
    assert extract_label("/opt/nodejs-tools/agent --flag value") == "/opt/nodejs-tools/agent --flag value"


def test_first_pattern_group_wins():
    """A runtime name later in the line beats an earlier verb."""
    command = "dev-server --runtime bun"
    label = extract_label(command)
    assert "bun" in label
