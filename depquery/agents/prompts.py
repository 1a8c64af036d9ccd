"""
Prompt texts sent to the remote agent.

The system prompt is delivered once per new session with no-reply
semantics, so it grounds the agent without ever being shown to the user.
"""

from typing import Optional


DEFAULT_AGENT_PROMPT = """You are an AI agent whose job is to answer questions about the codebase you are asked about. Your primary responsibility is to help developers understand how to use dependencies and codebases effectively. When answering questions:

1. Provide clear, practical answers with code examples when relevant
2. Reference specific files, functions, or patterns in the codebase when possible
3. Explain not just what the code does, but how to use it effectively
4. If the question is ambiguous, ask clarifying questions
5. Focus on helping developers understand how to integrate and use the dependency in their projects
6. If you need to explore the repository (e.g. read files, run commands), do so first, then give your full answer in the same response. Do not send only a short placeholder and then stop; include your findings and complete answer in one reply.

IMPORTANT: The working directory for this session is set to the repository root. When executing shell commands, you should operate from this directory. If you need to change directories, use 'cd' to navigate, but remember that the repository root is your base working directory."""

SUMMARY_PROMPT = (
    "Provide a concise summary of this repository: its purpose, main exports "
    "or entry points, and key patterns or conventions. This summary will be "
    "used to give context to future questions about the repository. Reply "
    "with only the summary text, no preamble."
)

SESSION_TITLE_PREFIX = "Query: "
SESSION_TITLE_CHARS = 50


def session_title(question: str) -> str:
    """Short human-readable session title from the start of the question."""
    return f"{SESSION_TITLE_PREFIX}{question[:SESSION_TITLE_CHARS]}"


def build_system_prompt(
    repository_path: str,
    agent_prompt: Optional[str] = None,
    summary: Optional[str] = None,
) -> str:
    """
    Build the hidden first message of a session.

    Layout: optional repository summary, then the persona block, then the
    repository's absolute location.
    """
    persona = agent_prompt or DEFAULT_AGENT_PROMPT
    prompt = (
        f"{persona}\n\n"
        f"IMPORTANT: The repository you are analyzing is located at: {repository_path}\n"
        "When executing shell commands, you should change to this directory first "
        f"using 'cd {repository_path}' before running any commands."
    )
    if summary and summary.strip():
        prompt = f"Repository summary (for context):\n\n{summary}\n\n---\n\n{prompt}"
    return prompt
