from types import SimpleNamespace

import pytest

from knowledge_quiz.evaluation import evaluate_answer
from knowledge_quiz.schemas import AnswerSubmission


def option(id, is_correct, feedback=None):
    return SimpleNamespace(id=id, is_correct=is_correct, feedback=feedback)


def question(question_type, correct_answer=None, options=(), explanation='Because.'):
    return SimpleNamespace(
        question_type=question_type,
        correct_answer=correct_answer,
        options=list(options),
        explanation=explanation,
    )


def submit(selected_answer=None, selected_options=None):
    return AnswerSubmission(
        question_id='q', selected_answer=selected_answer, selected_options=selected_options
    )


@pytest.fixture
def mcq():
    return question('mcq', options=[option('A', False, 'try again'), option('B', True)], explanation='B is right.')


def test_mcq_wrong_option_returns_its_feedback(mcq):
    assert evaluate_answer(mcq, submit('A')) == {'is_correct': False, 'feedback': 'try again'}


def test_mcq_right_option_returns_explanation(mcq):
    assert evaluate_answer(mcq, submit('B')) == {'is_correct': True, 'feedback': 'B is right.'}


def test_mcq_unknown_option_is_wrong_without_feedback(mcq):
    assert evaluate_answer(mcq, submit('Z')) == {'is_correct': False, 'feedback': None}


def test_evaluation_is_deterministic(mcq):
    first = evaluate_answer(mcq, submit('A'))
    assert evaluate_answer(mcq, submit('A')) == first


def test_evaluation_accepts_plain_dict_submissions(mcq):
    assert evaluate_answer(mcq, {'selected_answer': 'B'})['is_correct'] is True


@pytest.mark.parametrize('answer', ['  Yes ', 'yes', 'YES'])
def test_fill_blank_ignores_case_and_surrounding_space(answer):
    q = question('fill_blank', correct_answer='Yes')
    assert evaluate_answer(q, submit(answer))['is_correct'] is True


def test_fill_blank_has_no_fuzzy_matching():
    q = question('fill_blank', correct_answer='Front desk')
    assert evaluate_answer(q, submit('frontdesk'))['is_correct'] is False


def test_true_false_is_case_sensitive():
    q = question('true_false', correct_answer='true')
    assert evaluate_answer(q, submit('true'))['is_correct'] is True
    assert evaluate_answer(q, submit('True'))['is_correct'] is False
    assert evaluate_answer(q, submit('false'))['is_correct'] is False


def test_true_false_accepts_booleans():
    q = question('true_false', correct_answer='false')
    assert evaluate_answer(q, submit(False))['is_correct'] is True
    assert evaluate_answer(q, submit(True))['is_correct'] is False


def test_wrong_non_mcq_answer_has_no_feedback():
    q = question('true_false', correct_answer='true')
    assert evaluate_answer(q, submit('false')) == {'is_correct': False, 'feedback': None}


@pytest.mark.parametrize('question_type', ['true_false', 'fill_blank', 'mcq'])
def test_missing_submission_is_wrong(question_type, mcq):
    q = mcq if question_type == 'mcq' else question(question_type, correct_answer='true')
    assert evaluate_answer(q, submit())['is_correct'] is False
    assert evaluate_answer(q, submit(''))['is_correct'] is False


class TestMultiSelect:

    @pytest.fixture
    def multi(self):
        return question('mcq_multi', options=[
            option('A', True), option('B', True), option('C', True), option('D', False),
        ])

    def test_exact_set_is_correct(self, multi):
        assert evaluate_answer(multi, submit(selected_options=['C', 'A', 'B']))['is_correct'] is True

    def test_subset_is_wrong(self, multi):
        assert evaluate_answer(multi, submit(selected_options=['A', 'B']))['is_correct'] is False

    def test_superset_is_wrong(self, multi):
        assert evaluate_answer(multi, submit(selected_options=['A', 'B', 'C', 'D']))['is_correct'] is False

    def test_empty_selection_is_wrong(self, multi):
        assert evaluate_answer(multi, submit(selected_options=[]))['is_correct'] is False

    def test_question_without_correct_options_is_never_correct(self):
        malformed = question('mcq_multi', options=[option('A', False)])
        assert evaluate_answer(malformed, submit(selected_options=[]))['is_correct'] is False


@pytest.mark.parametrize('question_type', ['scenario', 'essay'])
def test_unsupported_types_are_wrong(question_type):
    q = question(question_type, correct_answer='anything')
    assert evaluate_answer(q, submit('anything')) == {'is_correct': False, 'feedback': None}
