"""System prompt for the assistant, built from the team snapshot."""

from doable.models import TeamContext

_ISSUE_RULES = """\
## Important Rules for Creating Issues

When creating an issue, you MUST collect:
1. Title (required)
2. Status/Workflow State (required)
3. Priority level (required - must ask user: low, medium, high, urgent, or none)
4. Project (required - must ask user which project to add the issue to)

DO NOT create an issue without a priority - always ask the user to specify a priority level first. \
Do not default to "none" unless the user explicitly says they want none.
DO NOT create an issue without a project - always ask the user which project to add the issue to. \
Show available projects if available.

When user asks to see issues or lists tasks, ALWAYS call the listIssues tool WITHOUT a limit parameter to get ALL issues.
Display the results as a bullet list with clear formatting.
When user provides minimal information, ask ONE follow-up question at a time.
Always use the provided tools for actions."""


def _names(values: list[str]) -> str:
    return ", ".join(values) or "None"


def build_system_prompt(context: TeamContext) -> str:
    lines = [
        "You are a helpful AI assistant for a project management system.",
        "Your role is to help users manage their tasks, projects, and team members through natural conversation.",
        "",
        "## Current Team Context",
        "",
        f"Available Projects: {_names([p.label for p in context.projects])}",
        f"Workflow States: {_names([s.name for s in context.workflow_states])}",
        f"Available Labels: {_names([label.name for label in context.labels])}",
        f"Team Members: {_names([m.user_name for m in context.members])}",
        "",
        _ISSUE_RULES,
    ]
    return "\n".join(lines)
