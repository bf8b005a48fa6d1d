import random

import pytest

from knowledge_quiz.attempts import AttemptRecorder
from knowledge_quiz.errors import ConflictError, NotFoundError, ValidationError
from knowledge_quiz.quiz_logic import (
    QuizSessionManager, compute_score, get_questions_for_context, link_question_to_context,
    load_questions_from_json, select_daily_challenge, unlink_question_from_context,
)
from knowledge_quiz.review import ReviewWorkflow
from knowledge_quiz.schemas import SessionResults


@pytest.fixture
def manager(session, clock):
    return QuizSessionManager(session, clock=clock)


def results(earned, total, questions=10, correct=0):
    return {'total_questions': questions, 'correct_answers': correct, 'total_points': total, 'earned_points': earned}


class TestScoring:

    @pytest.mark.parametrize('earned,total,expected', [(0, 10, 0.0), (5, 10, 50.0), (10, 10, 100.0), (0, 0, 0.0)])
    def test_score_percentage(self, earned, total, expected):
        score, _ = compute_score(SessionResults(**results(earned, total)))
        assert score == expected
        assert 0 <= score <= 100

    def test_configured_passing_score(self):
        assert compute_score(SessionResults(**results(799, 1000)), passing_score=80)[1] is False
        assert compute_score(SessionResults(**results(800, 1000)), passing_score=80)[1] is True

    def test_default_threshold_is_seventy(self):
        assert compute_score(SessionResults(**results(700, 1000)))[1] is True
        assert compute_score(SessionResults(**results(699, 1000)))[1] is False

    def test_zero_passing_score_is_honoured(self):
        assert compute_score(SessionResults(**results(0, 10)), passing_score=0)[1] is True


def test_start_session_is_empty(manager, now):
    quiz_session = manager.start_quiz_session('user-1', {'quiz_type': 'certification', 'passing_score': 80})

    assert quiz_session.user_id == 'user-1'
    assert quiz_session.started_at == now
    assert quiz_session.completed_at is None
    assert quiz_session.total_questions == 0
    assert quiz_session.passed is None


def test_start_session_rejects_unknown_quiz_type(manager):
    with pytest.raises(ValidationError):
        manager.start_quiz_session('user-1', {'quiz_type': 'party'})


def test_complete_session_uses_its_passing_score(manager, now):
    quiz_session = manager.start_quiz_session('user-1', {'quiz_type': 'quiz', 'passing_score': 80})
    completed = manager.complete_quiz_session(quiz_session.id, results(799, 1000, questions=5, correct=4))

    assert completed.completed_at == now
    assert completed.score_percentage == pytest.approx(79.9)
    assert completed.passed is False
    assert completed.total_questions == 5
    assert completed.correct_answers == 4


def test_complete_session_without_passing_score_defaults_to_seventy(manager):
    quiz_session = manager.start_quiz_session('user-1', {'quiz_type': 'quiz'})
    assert manager.complete_quiz_session(quiz_session.id, results(7, 10)).passed is True


def test_complete_session_with_no_points_scores_zero(manager):
    quiz_session = manager.start_quiz_session('user-1', {'quiz_type': 'quiz'})
    completed = manager.complete_quiz_session(quiz_session.id, results(0, 0, questions=0))
    assert completed.score_percentage == 0
    assert completed.passed is False


def test_completion_is_terminal(manager):
    quiz_session = manager.start_quiz_session('user-1', {'quiz_type': 'quiz'})
    manager.complete_quiz_session(quiz_session.id, results(9, 10))

    with pytest.raises(ConflictError):
        manager.complete_quiz_session(quiz_session.id, results(1, 10))
    assert manager.get_session(quiz_session.id).earned_points == 9


def test_complete_unknown_session(manager):
    with pytest.raises(NotFoundError):
        manager.complete_quiz_session('missing', results(1, 1))


@pytest.mark.parametrize('bad', [
    results(11, 10),
    {'total_questions': 2, 'correct_answers': 3, 'total_points': 2, 'earned_points': 2},
    {'total_questions': -1, 'correct_answers': 0, 'total_points': 0, 'earned_points': 0},
])
def test_complete_rejects_inconsistent_totals(manager, bad):
    quiz_session = manager.start_quiz_session('user-1', {'quiz_type': 'quiz'})
    with pytest.raises(ValidationError):
        manager.complete_quiz_session(quiz_session.id, bad)


def test_tally_uses_latest_attempt_per_question_and_points(session, manager, make_question):
    easy = make_question(points=1)
    hard = make_question(question_text='Hard one?', points=3)
    quiz_session = manager.start_quiz_session('user-1', {'quiz_type': 'quiz'})
    recorder = AttemptRecorder(session)

    recorder.record_attempt('user-1', {'question_id': easy.id, 'selected_answer': easy.options[1].id, 'session_id': quiz_session.id})
    recorder.record_attempt('user-1', {'question_id': hard.id, 'selected_answer': hard.options[1].id, 'session_id': quiz_session.id})
    recorder.record_attempt('user-1', {'question_id': hard.id, 'selected_answer': hard.options[0].id, 'session_id': quiz_session.id})

    tally = manager.tally_session_results(quiz_session.id)
    assert tally == SessionResults(total_questions=2, correct_answers=1, total_points=4, earned_points=1)


class TestUsages:

    def test_link_and_list_in_display_order(self, session, make_question):
        first = make_question(question_text='First?')
        second = make_question(question_text='Second?')
        link_question_to_context(session, {'question_id': second.id, 'usage_type': 'lesson', 'usage_entity_id': 'lesson-1', 'display_order': 1})
        link_question_to_context(session, {'question_id': first.id, 'usage_type': 'lesson', 'usage_entity_id': 'lesson-1', 'display_order': 0})

        questions = get_questions_for_context(session, 'lesson', 'lesson-1')
        assert [q.question_text for q in questions] == ['First?', 'Second?']
        assert get_questions_for_context(session, 'quiz', 'lesson-1') == []

    def test_link_defaults(self, session, make_question):
        q = make_question()
        usage = link_question_to_context(session, {'question_id': q.id, 'usage_type': 'sop_inline', 'usage_entity_id': 'sop-1'})
        assert usage.is_required is True
        assert usage.weight == 1.0

    def test_duplicate_link_conflicts(self, session, make_question):
        q = make_question()
        link = {'question_id': q.id, 'usage_type': 'quiz', 'usage_entity_id': 'quiz-1'}
        link_question_to_context(session, link)
        with pytest.raises(ConflictError):
            link_question_to_context(session, link)

    def test_link_unknown_question(self, session):
        with pytest.raises(NotFoundError):
            link_question_to_context(session, {'question_id': 'missing', 'usage_type': 'quiz', 'usage_entity_id': 'quiz-1'})

    def test_unlink_keeps_the_question(self, session, store, make_question):
        q = make_question()
        link_question_to_context(session, {'question_id': q.id, 'usage_type': 'quiz', 'usage_entity_id': 'quiz-1'})
        unlink_question_from_context(session, q.id, 'quiz', 'quiz-1')

        assert get_questions_for_context(session, 'quiz', 'quiz-1') == []
        assert store.get_question(q.id) is not None
        with pytest.raises(NotFoundError):
            unlink_question_from_context(session, q.id, 'quiz', 'quiz-1')


class TestDailyChallenge:

    def _publish(self, session, question):
        workflow = ReviewWorkflow(session)
        workflow.submit_for_review(question.id)
        workflow.approve(question.id, 'reviewer-1')
        return question

    def test_only_published_questions_are_drawn(self, session, make_question):
        published = [self._publish(session, make_question(question_text=f'Q{i}?')) for i in range(4)]
        make_question(question_text='Draft?')

        chosen = select_daily_challenge(session, 'user-1', count=3, rng=random.Random(7))
        assert len(chosen) == 3
        assert len({q.id for q in chosen}) == 3
        assert {q.id for q in chosen} <= {q.id for q in published}

    def test_fewer_questions_than_requested(self, session, make_question):
        self._publish(session, make_question())
        assert len(select_daily_challenge(session, 'user-1', count=3)) == 1

    def test_no_published_questions(self, session, make_question):
        make_question()
        assert select_daily_challenge(session, 'user-1') == []

    def test_unseen_questions_are_favoured(self, session, make_question):
        seen = self._publish(session, make_question(question_text='Seen?'))
        unseen = self._publish(session, make_question(question_text='Unseen?'))
        recorder = AttemptRecorder(session)
        for _ in range(10):
            recorder.record_attempt('user-1', {'question_id': seen.id, 'selected_answer': seen.options[1].id})

        rng = random.Random(3)
        picks = [select_daily_challenge(session, 'user-1', count=1, rng=rng)[0].id for _ in range(50)]
        assert picks.count(unseen.id) > picks.count(seen.id)


def test_load_questions_from_json_is_idempotent(tmp_path, session, store):
    bank = [
        {'question_text': 'Checkout time?', 'question_type': 'fill_blank', 'correct_answer': 'noon'},
        {'question_text': 'Pool towels?', 'options': [{'option_text': 'Blue', 'is_correct': True}], 'tags': ['pool']},
        {'question_text': 'Broken?', 'question_type': 'true_false'},
        {'question_text': ''},
    ]
    (tmp_path / 'front_office.json').write_text(__import__('json').dumps(bank), encoding='utf-8')
    (tmp_path / 'notes.txt').write_text('ignored', encoding='utf-8')
    (tmp_path / 'broken.json').write_text('{not json', encoding='utf-8')

    assert load_questions_from_json(str(tmp_path), session) == 2
    assert load_questions_from_json(str(tmp_path), session) == 0

    questions, total = store.list_questions({'status': 'published'})
    assert total == 2
    tags = {q.question_text: q.tags for q in questions}
    assert tags == {'Checkout time?': ['front-office'], 'Pool towels?': ['pool']}


def test_load_questions_from_missing_directory(session):
    assert load_questions_from_json('/nonexistent/questions', session) == 0


def test_tally_ignores_other_users_rows_in_the_session(manager, make_question, add_attempt, now):
    q = make_question()
    quiz_session = manager.start_quiz_session('user-1', {'quiz_type': 'quiz'})
    add_attempt('user-1', q.id, now, is_correct=True, session_id=quiz_session.id)
    add_attempt('user-2', q.id, now, is_correct=False, session_id=quiz_session.id)

    tally = manager.tally_session_results(quiz_session.id)
    assert tally.correct_answers == 1
    assert tally.earned_points == 1


def test_archived_questions_leave_context_listings(session, make_question):
    kept = make_question(question_text='Kept?')
    retired = make_question(question_text='Retired?')
    for q in (kept, retired):
        link_question_to_context(session, {'question_id': q.id, 'usage_type': 'lesson', 'usage_entity_id': 'lesson-1'})
    ReviewWorkflow(session).archive(retired.id)

    assert [q.question_text for q in get_questions_for_context(session, 'lesson', 'lesson-1')] == ['Kept?']
