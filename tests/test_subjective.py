"""
Unit tests for subjective suggestions and final scores
"""
import pytest

from ezmark.grader.models import (
    AISuggestion,
    Paper,
    StudentIdentity,
    StudentPaper,
    SubjectiveAnswer,
)
from ezmark.grader.subjective import (
    ScoreValidationError,
    SubjectiveAssistant,
    SuggestionCache,
    clamp_score,
    count_pending,
    create_subjective_answers,
    submit_score,
)

from conftest import FakeRecognitionService, run


def answer_for(paper_id="student-1"):
    return SubjectiveAnswer(
        question_id="q2", question_number=2, image_ref=f"s/{paper_id}/questions/q2.png"
    )


class TestCreateAnswers:
    """Test cases for pending answer creation"""

    def test_one_pending_answer_per_question(self, layout):
        papers = [Paper(
            paper_id="student-1", start_page=0, end_page=2,
            question_image_refs={"q2": "s/student-1/questions/q2.png"},
        )]
        student_papers = [StudentPaper(
            student=StudentIdentity(student_id="S001", name="Alice"), paper_id="student-1"
        )]

        assert create_subjective_answers(layout, papers, student_papers) == 1

        answer = student_papers[0].subjective_answers[0]
        assert answer.question_id == "q2"
        assert answer.image_ref == "s/student-1/questions/q2.png"
        assert answer.score == -1
        assert not answer.done
        assert not answer.ai_suggestion.available
        assert count_pending(student_papers) == 1


class TestSubmitScore:
    """Test cases for human scores"""

    def test_valid_score(self, layout):
        answer = submit_score(answer_for(), layout.get_component("q2"), 7.5)
        assert answer.score == 7.5
        assert answer.done

    def test_bounds_inclusive(self, layout):
        q2 = layout.get_component("q2")
        assert submit_score(answer_for(), q2, 0).score == 0
        assert submit_score(answer_for(), q2, 10).score == 10

    @pytest.mark.parametrize("score", [-1, 10.5, float("nan"), float("inf")])
    def test_invalid_score_rejected(self, layout, score):
        answer = answer_for()
        with pytest.raises(ScoreValidationError):
            submit_score(answer, layout.get_component("q2"), score)
        assert answer.score == -1
        assert not answer.done

    def test_clamp_score(self):
        assert clamp_score(12, 10) == 10
        assert clamp_score(-3, 10) == 0
        assert clamp_score(-1, 10) == -1
        assert clamp_score(float("nan"), 10) == -1


class TestSubjectiveAssistant:
    """Test cases for suggestion requests and caching"""

    def test_suggestion_stored_and_cached(self, layout, assets):
        recognizer = FakeRecognitionService(subjective={("student-1", "q2"): 7})
        assistant = SubjectiveAssistant(recognizer, assets)
        answer = answer_for()

        first = run(assistant.suggest("s", "student-1", layout.get_component("q2"), answer))
        second = run(assistant.suggest("s", "student-1", layout.get_component("q2"), answer))

        assert first.score == 7
        assert second == first
        assert answer.ai_suggestion.score == 7
        assert recognizer.calls["subjective"] == 1
        assert answer.score == -1

    def test_failure_not_cached(self, layout, assets):
        recognizer = FakeRecognitionService()
        assistant = SubjectiveAssistant(recognizer, assets)
        answer = answer_for()

        for _ in range(2):
            suggestion = run(assistant.suggest("s", "student-1", layout.get_component("q2"), answer))
            assert not suggestion.available

        assert recognizer.calls["subjective"] == 2
        assert len(assistant.cache) == 0
        assert not answer.ai_suggestion.available

    def test_suggested_score_clamped(self, layout, assets):
        recognizer = FakeRecognitionService(subjective={("student-1", "q2"): 15})
        assistant = SubjectiveAssistant(recognizer, assets)

        suggestion = run(assistant.suggest("s", "student-1", layout.get_component("q2"), answer_for()))

        assert suggestion.score == 10

    def test_stored_suggestion_reused(self, layout, assets):
        recognizer = FakeRecognitionService()
        answer = answer_for()
        answer.ai_suggestion = AISuggestion(suggestion="good", score=6)

        suggestion = run(SubjectiveAssistant(recognizer, assets).suggest(
            "s", "student-1", layout.get_component("q2"), answer
        ))

        assert suggestion.score == 6
        assert recognizer.calls["subjective"] == 0

    def test_prefetch(self, layout, assets):
        recognizer = FakeRecognitionService(subjective={("student-1", "q2"): 7})
        student_papers = [
            StudentPaper(
                student=StudentIdentity(student_id=sid, name=sid),
                paper_id=paper_id,
                subjective_answers=[answer_for(paper_id)],
            )
            for sid, paper_id in (("S001", "student-1"), ("S002", "student-2"))
        ]

        available = run(SubjectiveAssistant(recognizer, assets).prefetch("s", layout, student_papers))

        assert available == 1
        assert student_papers[0].subjective_answers[0].ai_suggestion.score == 7


class TestSuggestionCache:
    """Test cases for the in-process cache"""

    def test_clear_by_schedule(self):
        cache = SuggestionCache()
        cache.put("a", "student-1", "q2", AISuggestion(score=3))
        cache.put("b", "student-1", "q2", AISuggestion(score=4))
        cache.put("b", "student-2", "q2", AISuggestion())

        assert len(cache) == 2
        cache.clear("a")
        assert cache.get("a", "student-1", "q2") is None
        assert cache.get("b", "student-1", "q2").score == 4
        cache.clear()
        assert len(cache) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
