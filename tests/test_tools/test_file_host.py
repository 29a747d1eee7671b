"""
Tests for tandem/tools/file_ops.py and tandem/tools/host.py - File Host.
"""

from tandem.tools.file_ops import read_error, read_workspace_file, write_workspace_file
from tandem.tools.host import LocalHost


class TestReadWorkspaceFile:
    """Tests for read blocks."""

    def test_relative_path(self, temp_workspace):
        content = read_workspace_file("README.md", temp_workspace)

        assert content.startswith("# Demo")

    def test_absolute_path(self, temp_workspace, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_text("elsewhere")

        assert read_workspace_file(str(outside), temp_workspace) == "elsewhere"

    def test_missing_file(self, temp_workspace):
        assert read_workspace_file("missing.txt", temp_workspace) == read_error("missing.txt")
        assert read_error("missing.txt") == "[Error: cannot read missing.txt]"

    def test_directory_is_an_error(self, temp_workspace):
        assert read_workspace_file("src", temp_workspace) == "[Error: cannot read src]"

    def test_binary_file_is_refused(self, temp_workspace):
        (temp_workspace / "logo.png").write_bytes(b"\x89PNG\x00\x00")

        assert read_workspace_file("logo.png", temp_workspace) == "[Error: cannot read logo.png]"

    def test_chinese_markdown_is_read(self, temp_workspace):
        text = "# 说明\n这是一个中文文档。\n"
        (temp_workspace / "notes.md").write_text(text, encoding="utf-8")

        assert read_workspace_file("notes.md", temp_workspace) == text

    def test_long_file_is_truncated(self, temp_workspace):
        (temp_workspace / "big.txt").write_text("y" * 50)

        content = read_workspace_file("big.txt", temp_workspace, max_chars=10)

        assert content.startswith("y" * 10)
        assert "output truncated" in content


class TestWriteWorkspaceFile:
    """Tests for approved write blocks."""

    def test_creates_parent_directories(self, temp_workspace):
        outcome = write_workspace_file("docs/guide/intro.md", "# Intro\n", temp_workspace)

        assert outcome["status"] == "success"
        assert outcome["summary"] == "File written: docs/guide/intro.md"
        assert (temp_workspace / "docs" / "guide" / "intro.md").read_text() == "# Intro\n"

    def test_overwrites_existing_file(self, temp_workspace):
        write_workspace_file("README.md", "new", temp_workspace)

        assert (temp_workspace / "README.md").read_text() == "new"

    def test_failure_is_reported(self, temp_workspace):
        # A regular file cannot be used as a parent directory
        outcome = write_workspace_file("README.md/child.txt", "x", temp_workspace)

        assert outcome["status"] == "error"
        assert outcome["summary"].startswith("Failed to write README.md/child.txt")

    def test_missing_root_is_reported(self, tmp_path):
        outcome = write_workspace_file("a.txt", "x", tmp_path / "gone")

        assert outcome["status"] == "error"
        assert outcome["error"] == "ValueError"


class TestLocalHost:
    """Tests for the LocalHost facade."""

    def test_read_and_write(self, temp_workspace):
        host = LocalHost()

        assert host.write_file("a.txt", "A", temp_workspace)["status"] == "success"
        assert host.read_file("a.txt", temp_workspace) == "A"

    def test_run_command(self, temp_workspace):
        result = LocalHost().run_command("echo tandem", temp_workspace, timeout=30)

        assert result["exit_code"] == 0
        assert "tandem" in result["stdout"]
