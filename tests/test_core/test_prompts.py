"""
Tests for tandem/core/prompts.py - prompt registry.
"""

from tandem.core.prompts import (
    COMMAND_RESULT_PROMPT,
    SYSTEM_PROMPT,
    build_code_action_prompt,
    build_system_prompt,
)


def test_system_prompt_teaches_all_block_forms():
    assert "```run" in SYSTEM_PROMPT
    assert "```read" in SYSTEM_PROMPT
    assert "```write:filepath" in SYSTEM_PROMPT


def test_build_system_prompt_appends_snapshot():
    prompt = build_system_prompt("Workspace: app")

    assert prompt.startswith(SYSTEM_PROMPT)
    assert prompt.endswith("\n\nCurrent workspace:\nWorkspace: app")
    assert build_system_prompt("") == SYSTEM_PROMPT


def test_command_result_prompt():
    prompt = COMMAND_RESULT_PROMPT.format(
        command="npm test", exit_code=1, timeout_note="", output="1 failing"
    )

    assert prompt.startswith("The command `npm test` just finished with exit code 1.")
    assert "1 failing" in prompt


def test_code_action_prompts():
    prompt = build_code_action_prompt("test", "def f(): pass", "python")

    assert prompt == "Write comprehensive tests for this python code:\n```python\ndef f(): pass\n```"


def test_unknown_code_action_falls_back_to_explain():
    prompt = build_code_action_prompt("dance", "{x}", "js")

    assert prompt.startswith("Explain this js code:")
    assert "{x}" in prompt
