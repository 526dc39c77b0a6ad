"""Study activity variants: a closed union discriminated on ``activity_type``.

Each variant carries only the fields relevant to it. Payloads are validated
here, at the boundary, before any service touches storage.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from studyhub.errors import ValidationError

Difficulty = Literal["easy", "medium", "hard"]


class _ActivityBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    minutes: int = Field(0, ge=0)
    occurred_at: datetime | None = None

    @property
    def score(self) -> int | None:
        return None

    @property
    def difficulty(self) -> str | None:
        return None

    def refs(self) -> dict[str, str | None]:
        """Subject/course/lesson references stored on the activity row."""
        return {
            "subject_id": getattr(self, "subject_id", None),
            "course_id": getattr(self, "course_id", None),
            "lesson_id": getattr(self, "lesson_id", None),
        }

    def xp_actions(self) -> list[str]:
        """Reward actions this activity earns, keys of ``XP_REWARDS``."""
        return []

    def extra_fields(self) -> dict[str, Any]:
        """Variant-specific fields persisted in the activity metadata column."""
        return {}


class QuizActivity(_ActivityBase):
    activity_type: Literal["quiz"] = "quiz"
    quiz_score: int | None = Field(None, ge=0, le=100, alias="score")
    quiz_id: str | None = None
    subject_id: str | None = None
    quiz_difficulty: Difficulty | None = Field(None, alias="difficulty")

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    @property
    def score(self) -> int | None:
        return self.quiz_score

    @property
    def difficulty(self) -> str | None:
        return self.quiz_difficulty

    def xp_actions(self) -> list[str]:
        actions = ["complete_quiz"]
        if self.quiz_score == 100:
            actions.append("perfect_score")
        return actions

    def extra_fields(self) -> dict[str, Any]:
        return {"quiz_id": self.quiz_id, "difficulty": self.quiz_difficulty}


class LessonActivity(_ActivityBase):
    activity_type: Literal["lesson"] = "lesson"
    lesson_id: str | None = None
    course_id: str | None = None
    lesson_difficulty: Difficulty | None = Field(None, alias="difficulty")

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    @property
    def difficulty(self) -> str | None:
        return self.lesson_difficulty

    def xp_actions(self) -> list[str]:
        return ["read_lesson"]

    def extra_fields(self) -> dict[str, Any]:
        return {"difficulty": self.lesson_difficulty}


class VideoActivity(_ActivityBase):
    activity_type: Literal["video"] = "video"
    lesson_id: str | None = None
    course_id: str | None = None

    def xp_actions(self) -> list[str]:
        return ["watch_video"]


class CourseActivity(_ActivityBase):
    """A completed course."""

    activity_type: Literal["course"] = "course"
    course_id: str

    def xp_actions(self) -> list[str]:
        return ["finish_course"]


class StudySessionActivity(_ActivityBase):
    """Free-form study time; counts toward minutes and streaks only."""

    activity_type: Literal["study_session"] = "study_session"
    subject_id: str | None = None


Activity = Annotated[
    Union[QuizActivity, LessonActivity, VideoActivity, CourseActivity, StudySessionActivity],
    Field(discriminator="activity_type"),
]

_activity_adapter: TypeAdapter[Activity] = TypeAdapter(Activity)


def parse_activity(data: dict[str, Any]) -> Activity:
    """Validate a raw payload into an activity variant.

    Raises ``ValidationError`` for unknown activity types, negative minutes,
    out-of-range scores, or fields that do not belong to the variant.
    """
    try:
        return _activity_adapter.validate_python(data)
    except PydanticValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(f"Invalid activity: {errors}") from exc
