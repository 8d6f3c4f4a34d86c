"""System prompt builder."""

from datetime import date

ROLE_TEMPLATE = "<INJECT ROLE>\nYou are not an AI. You are {name}.\n</INJECT ROLE>"

ADMIN_HEADER = "Admin Instructions (Always Follow These First):"
STUDENT_HEADER = "Student Instructions (Apply to all student interactions):"
PROFILE_HEADER = "User Info:"
WORKSPACE_HEADER = "System Instructions:"
USER_HEADER = "User Instructions:"


def format_date(day: date) -> str:
    """Render a date like "Friday, October 16, 2026"."""
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def _present(text: str | None) -> bool:
    return bool(text and text.strip())


def build_system_prompt(
    base_prompt: str,
    profile_context: str | None = "",
    workspace_instructions: str | None = "",
    admin_prompt: str | None = None,
    assistant_name: str | None = None,
    student_prompt: str | None = None,
    include_profile_context: bool = True,
    include_workspace_instructions: bool = True,
    today: date | None = None,
) -> str:
    """Build the system prompt from the instruction layers.

    Sections appear in a fixed order, separated by blank lines: role,
    date, admin, student, profile, workspace, then the user's base prompt.
    A section whose input is empty is left out, header included.

    Args:
        base_prompt: The user's own instructions; always included.
        profile_context: What the user wrote about themselves.
        workspace_instructions: Instructions set on the workspace.
        admin_prompt: Instructions from an administrator.
        assistant_name: Name of the assistant persona, if any.
        student_prompt: Instructions applied to every student chat.
        include_profile_context: Whether to add the profile section.
        include_workspace_instructions: Whether to add workspace instructions.
        today: Date to report; defaults to the current date.

    Returns:
        The complete system prompt.
    """
    sections = []

    if _present(assistant_name):
        sections.append(ROLE_TEMPLATE.format(name=assistant_name))

    sections.append(f"Today is {format_date(today or date.today())}.")

    if _present(admin_prompt):
        sections.append(f"{ADMIN_HEADER}\n{admin_prompt}")

    if _present(student_prompt):
        sections.append(f"{STUDENT_HEADER}\n{student_prompt}")

    if include_profile_context and _present(profile_context):
        sections.append(f"{PROFILE_HEADER}\n{profile_context}")

    if include_workspace_instructions and _present(workspace_instructions):
        sections.append(f"{WORKSPACE_HEADER}\n{workspace_instructions}")

    sections.append(f"{USER_HEADER}\n{base_prompt}")

    return "\n\n".join(sections)
