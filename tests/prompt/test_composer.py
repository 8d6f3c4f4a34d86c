"""Tests for the system prompt builder."""

from datetime import date

from tutormem.prompt import build_system_prompt
from tutormem.prompt.composer import format_date

TODAY = date(2026, 10, 16)

BASE = "User initial prompt."
PROFILE = "User profile context."
WORKSPACE = "Workspace instructions."
ADMIN = "Admin instructions."
STUDENT = "Student instructions."


def build_full(**overrides) -> str:
    values = {
        "profile_context": PROFILE,
        "workspace_instructions": WORKSPACE,
        "admin_prompt": ADMIN,
        "assistant_name": "Test Assistant",
        "student_prompt": STUDENT,
        "today": TODAY,
    }
    values.update(overrides)
    return build_system_prompt(BASE, **values)


class TestFormatDate:
    """Tests for date rendering."""

    def test_long_form(self):
        """Dates render as weekday, month day, year."""
        assert format_date(TODAY) == "Friday, October 16, 2026"

    def test_no_zero_padding(self):
        """The day of month is not zero padded."""
        assert format_date(date(2026, 3, 5)) == "Thursday, March 5, 2026"


class TestBuildSystemPrompt:
    """Tests for build_system_prompt."""

    def test_all_parts(self):
        """Every layer is present, in order, separated by blank lines."""
        assert build_full() == "\n\n".join(
            [
                "<INJECT ROLE>\nYou are not an AI. You are Test Assistant.\n</INJECT ROLE>",
                "Today is Friday, October 16, 2026.",
                f"Admin Instructions (Always Follow These First):\n{ADMIN}",
                f"Student Instructions (Apply to all student interactions):\n{STUDENT}",
                f"User Info:\n{PROFILE}",
                f"System Instructions:\n{WORKSPACE}",
                f"User Instructions:\n{BASE}",
            ]
        )

    def test_minimal(self):
        """Only the date and user instructions remain when nothing else is set."""
        result = build_system_prompt(BASE, "", "", None, None, None, today=TODAY)
        assert result == (
            "Today is Friday, October 16, 2026.\n\n"
            f"User Instructions:\n{BASE}"
        )

    def test_blank_sections_omitted(self):
        """Whitespace-only inputs count as absent."""
        result = build_full(admin_prompt="   ", assistant_name="", student_prompt="\n")
        assert "<INJECT ROLE>" not in result
        assert "Admin Instructions" not in result
        assert "Student Instructions" not in result

    def test_profile_toggle(self):
        """include_profile_context=False drops the profile section."""
        result = build_full(include_profile_context=False)
        assert "User Info:" not in result
        assert PROFILE not in result

    def test_workspace_toggle(self):
        """include_workspace_instructions=False drops workspace instructions."""
        result = build_full(include_workspace_instructions=False)
        assert "System Instructions:" not in result
        assert WORKSPACE not in result

    def test_empty_base_prompt_kept(self):
        """The user instructions header is always present."""
        result = build_system_prompt("", today=TODAY)
        assert result.endswith("User Instructions:\n")

    def test_ordering(self):
        """Admin instructions come before student, profile and workspace text."""
        result = build_full()
        positions = [
            result.index(header)
            for header in (
                "Admin Instructions",
                "Student Instructions",
                "User Info",
                "System Instructions",
                "User Instructions",
            )
        ]
        assert positions == sorted(positions)

    def test_defaults_to_current_date(self):
        """Without today the current date is used."""
        result = build_system_prompt(BASE)
        assert f"Today is {format_date(date.today())}." in result
