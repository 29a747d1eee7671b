"""
Tandem - agentic orchestration core for editor-integrated assistants.

Turns model output into approved shell commands, file reads and file writes,
and feeds the results back to the model until the task is done.
"""

__version__ = "0.1.0"
