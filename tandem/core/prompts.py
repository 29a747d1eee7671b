"""
Centralized Prompt Registry for Tandem.

All prompts sent to the Model Gateway live here:
- System prompt teaching the model the run/read/write action blocks
- Synthetic command-result turn used for the "continue working" step
- Enrichment wrappers (single file, review bundle)
- Editor code actions (explain, refactor, test, fix, docs)

Agent logic formats these templates; it does not hardcode prompt text.
"""

# ============================================================================
# SYSTEM PROMPT
# ============================================================================

SYSTEM_PROMPT = """You are Tandem, an agentic coding assistant inside the user's editor.

YOU CAN EXECUTE ACTIONS using these exact formats:

To run a terminal command (user must approve first):
```run
exact command here
```

To read a file:
```read
filepath here
```

To write/create a file (user must approve first):
```write:filepath
file content here
```

RULES:
- ALWAYS use the ```run format for terminal commands
- Explain what each command does BEFORE the run block
- One command at a time - wait for results before suggesting the next
- NEVER invent commands - only suggest real, valid commands
- FOCUS on what the user asked. When asked to check or understand code, READ the
  relevant source files with ```read blocks and analyze them instead of proposing installs.

COMMON COMMANDS:
- Git: git status, git add -A && git commit -m "message", git push, git pull
- Node.js: npm install, npm run dev, npm run build, npm test
- Python: python -m pytest, pip install -r requirements.txt
- Salesforce (sf CLI): sf org login web --set-default-org, sf project retrieve start,
  sf project deploy start, sf apex run test --test-level RunLocalTests"""

WORKSPACE_SECTION = "\n\nCurrent workspace:\n{snapshot}"


def build_system_prompt(snapshot: str = "") -> str:
    """Fixed instructions plus the injected workspace snapshot (if any)."""
    if not snapshot:
        return SYSTEM_PROMPT
    return SYSTEM_PROMPT + WORKSPACE_SECTION.format(snapshot=snapshot)


# ============================================================================
# EXECUTION FEEDBACK
# ============================================================================

# Synthetic user turn folded back after an approved run block
COMMAND_RESULT_PROMPT = """The command `{command}` just finished with exit code {exit_code}.{timeout_note}
Output:
```
{output}
```

Provide a clear analysis. If the task is complete, summarize. If more steps are needed, suggest the next action."""

TIMEOUT_NOTE = " It was stopped after reaching the time limit."

# Transcript rendering of a command result (surfaced and stored as an assistant turn)
COMMAND_RESULT_DISPLAY = """**Command:** `{command}` (exit code {exit_code})
```
{output}
```"""

NO_OUTPUT = "(no output)"

# Read block result (history turn and surface rendering)
READ_RESULT_TURN = "📄 {path}:\n{content}"
READ_RESULT_DISPLAY = "📄 **{path}:**\n```\n{content}\n```"

WRITE_CONFIRMATION = "✅ {message}"


# ============================================================================
# ENRICHMENT
# ============================================================================

FILE_ENRICHMENT_PROMPT = """The user asked: "{message}"

Here is the complete file content of {path}:

{content}

Explain this code in detail - its purpose, how it works, key functions, and any issues."""

REVIEW_ENRICHMENT_PROMPT = """The user asked: "{message}"

Here is the source code from the project. Analyze it thoroughly:

{sources}

Provide a detailed analysis: what each file does, how they relate, patterns used, and any issues."""


# ============================================================================
# CODE ACTIONS
# ============================================================================

CODE_ACTION_PROMPTS = {
    "explain": "Explain this {language} code:\n```{language}\n{code}\n```",
    "refactor": "Refactor this {language} code for readability and performance:\n```{language}\n{code}\n```",
    "test": "Write comprehensive tests for this {language} code:\n```{language}\n{code}\n```",
    "fix": "Fix bugs in this {language} code:\n```{language}\n{code}\n```",
    "docs": "Generate documentation for this {language} code:\n```{language}\n{code}\n```",
}


def build_code_action_prompt(action: str, code: str, language: str) -> str:
    """
    Build the message for an editor code action.

    Unknown actions fall back to "explain".
    """
    template = CODE_ACTION_PROMPTS.get(action, CODE_ACTION_PROMPTS["explain"])
    return template.format(language=language, code=code)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "SYSTEM_PROMPT",
    "build_system_prompt",
    "COMMAND_RESULT_PROMPT",
    "TIMEOUT_NOTE",
    "COMMAND_RESULT_DISPLAY",
    "NO_OUTPUT",
    "READ_RESULT_TURN",
    "READ_RESULT_DISPLAY",
    "WRITE_CONFIRMATION",
    "FILE_ENRICHMENT_PROMPT",
    "REVIEW_ENRICHMENT_PROMPT",
    "CODE_ACTION_PROMPTS",
    "build_code_action_prompt",
]
