"""
Tests for tandem/agents/enrichment.py - Message Enrichment.
"""

from tandem.agents.enrichment import (
    enrich_message,
    find_file_mention,
    is_code_review_request,
)
from tandem.core.workspace import WorkspaceInspector


class TestDetection:
    """Tests for the request classifiers."""

    def test_file_mention(self):
        assert find_file_mention("please explain src/app.py now") == "src/app.py"
        assert find_file_mention("Review utils.js") == "utils.js"
        assert find_file_mention("explain recursion") is None

    def test_code_review_request(self):
        assert is_code_review_request("How does this project work?")
        assert is_code_review_request("can you review code in here")
        assert not is_code_review_request("run the tests")


class TestEnrichMessage:
    """Tests for enrich_message()."""

    def test_named_file_is_inlined(self, temp_workspace):
        inspector = WorkspaceInspector(temp_workspace)

        enrichment = enrich_message("explain app.py", inspector)

        assert enrichment.kind == "file"
        assert enrichment.source == "app.py"
        assert "def greet(name):" in enrichment.message
        assert 'The user asked: "explain app.py"' in enrichment.message

    def test_review_request_gets_source_bundle(self, temp_workspace):
        inspector = WorkspaceInspector(temp_workspace)

        enrichment = enrich_message("what does this code do?", inspector)

        assert enrichment.kind == "review"
        assert "=== src/app.py ===" in enrichment.message
        assert "=== src/utils.js ===" in enrichment.message
        assert "node_modules" not in enrichment.message

    def test_unknown_file_falls_back_to_plain_message(self, temp_workspace):
        inspector = WorkspaceInspector(temp_workspace)

        enrichment = enrich_message("open missing.py", inspector)

        assert enrichment.kind is None
        assert enrichment.message == "open missing.py"

    def test_no_workspace_leaves_message_alone(self):
        enrichment = enrich_message("how does it work", WorkspaceInspector(None))

        assert enrichment.kind is None
        assert enrichment.message == "how does it work"
