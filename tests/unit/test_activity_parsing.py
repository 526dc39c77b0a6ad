"""Activity payload validation at the API boundary."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from studyhub.errors import ValidationError
from studyhub.gamification.activities import (
    CourseActivity,
    LessonActivity,
    QuizActivity,
    StudySessionActivity,
    VideoActivity,
    parse_activity,
)


class TestParseActivity:
    def test_quiz_with_aliases(self):
        activity = parse_activity(
            {"activity_type": "quiz", "minutes": 12, "score": 95, "difficulty": "hard", "quiz_id": "q1"}
        )
        assert isinstance(activity, QuizActivity)
        assert activity.score == 95
        assert activity.difficulty == "hard"
        assert activity.minutes == 12

    def test_each_variant(self):
        assert isinstance(parse_activity({"activity_type": "lesson", "lesson_id": "l1"}), LessonActivity)
        assert isinstance(parse_activity({"activity_type": "video", "minutes": 4}), VideoActivity)
        assert isinstance(parse_activity({"activity_type": "course", "course_id": "c1"}), CourseActivity)
        assert isinstance(parse_activity({"activity_type": "study_session", "minutes": 30}), StudySessionActivity)

    def test_occurred_at_parsed(self):
        activity = parse_activity(
            {"activity_type": "lesson", "occurred_at": "2026-03-02T06:45:00+00:00"}
        )
        assert activity.occurred_at == datetime(2026, 3, 2, 6, 45, tzinfo=timezone.utc)

    def test_negative_minutes_rejected(self):
        with pytest.raises(ValidationError):
            parse_activity({"activity_type": "study_session", "minutes": -5})

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_activity({"activity_type": "forum_post", "minutes": 5})

    def test_missing_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_activity({"minutes": 5})

    def test_score_out_of_range(self):
        with pytest.raises(ValidationError):
            parse_activity({"activity_type": "quiz", "score": 101})

    def test_fields_of_other_variants_rejected(self):
        with pytest.raises(ValidationError):
            parse_activity({"activity_type": "video", "score": 80})

    def test_course_requires_course_id(self):
        with pytest.raises(ValidationError):
            parse_activity({"activity_type": "course"})


class TestActivityRewards:
    def test_quiz_actions(self):
        assert QuizActivity(score=80).xp_actions() == ["complete_quiz"]
        assert QuizActivity(score=100).xp_actions() == ["complete_quiz", "perfect_score"]

    def test_other_actions(self):
        assert LessonActivity().xp_actions() == ["read_lesson"]
        assert VideoActivity().xp_actions() == ["watch_video"]
        assert CourseActivity(course_id="c1").xp_actions() == ["finish_course"]
        assert StudySessionActivity(minutes=20).xp_actions() == []

    def test_refs_only_carry_known_ids(self):
        refs = VideoActivity(lesson_id="l9", course_id="c2").refs()
        assert refs == {"subject_id": None, "course_id": "c2", "lesson_id": "l9"}

    def test_activities_are_immutable(self):
        activity = StudySessionActivity(minutes=10)
        with pytest.raises(PydanticValidationError):
            activity.minutes = 20
