"""Study-session form state and validation.

Validation runs before any backend call. A failing form keeps every
value the user typed so the page can re-render it as-is.
"""

from dataclasses import dataclass
from typing import Optional

from .schemas import StudySessionCreate

TITLE_MAX_LENGTH = 30
STUDY_LEVELS = {
    "high-school": "High School",
    "undergraduate": "Undergraduate",
    "graduate": "Graduate",
    "professional": "Professional",
}


@dataclass
class StudySessionForm:
    """Raw values posted by either creation form."""
    title: str = ""
    description: str = ""
    study_level: str = ""
    learning_goals: str = ""
    learning_style: str = ""
    weaknesses: str = ""
    additional_info: str = ""

    def validate_modal(self) -> Optional[str]:
        """Rules for the dashboard modal. Returns the first error message, if any."""
        if not self.title.strip():
            return "Please provide a title for your study session"
        if len(self.title) > TITLE_MAX_LENGTH:
            return f"Title must be {TITLE_MAX_LENGTH} characters or less"
        if not self.description.strip():
            return "Please provide a description of what you're studying for"
        return None

    def validate_standalone(self) -> Optional[str]:
        """Rules for the standalone page: no title required, level from a fixed list."""
        if not self.description.strip():
            return "Please provide a description of what you're studying for"
        if len(self.title) > TITLE_MAX_LENGTH:
            return f"Title must be {TITLE_MAX_LENGTH} characters or less"
        if self.study_level and self.study_level not in STUDY_LEVELS:
            return "Please select a valid study level"
        return None

    def to_create(self) -> StudySessionCreate:
        return StudySessionCreate(
            title=self.title or None,
            description=self.description,
            study_level=self.study_level,
            learning_goals=self.learning_goals,
            learning_style=self.learning_style,
            weaknesses=self.weaknesses,
            additional_info=self.additional_info,
        )
