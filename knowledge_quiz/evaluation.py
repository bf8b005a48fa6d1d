def _as_answer_text(value):
    """Renders a submitted single value the way answers are stored."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

def _submitted(submission, key):
    if isinstance(submission, dict):
        return submission.get(key)
    return getattr(submission, key, None)

def evaluate_answer(question, submission):
    """
    Decides whether a submission answers a question correctly.

    Rules by question type:
    - true_false: exact, case-sensitive match against correct_answer.
    - fill_blank: match after trimming and lowercasing both sides.
    - mcq: the selected option must exist and be marked correct.
    - mcq_multi: the selected option ids must equal the correct set exactly.
    - anything else is incorrect.

    On a correct answer the feedback is the question's explanation; on a
    wrong mcq answer it is the selected option's feedback; otherwise None.

    Returns:
        dict with ``is_correct`` (bool) and ``feedback`` (str or None).
    """
    is_correct = False
    feedback = None

    question_type = question.question_type
    selected_answer = _as_answer_text(_submitted(submission, 'selected_answer'))

    if question_type == 'true_false':
        is_correct = bool(selected_answer) and selected_answer == question.correct_answer

    elif question_type == 'fill_blank':
        user_answer = (selected_answer or '').strip().lower()
        correct_answer = (question.correct_answer or '').strip().lower()
        is_correct = bool(user_answer) and user_answer == correct_answer

    elif question_type == 'mcq':
        selected_option = next(
            (o for o in (question.options or []) if o.id == selected_answer), None
        )
        if selected_option is not None:
            is_correct = bool(selected_option.is_correct)
            feedback = selected_option.feedback

    elif question_type == 'mcq_multi':
        expected = {o.id for o in (question.options or []) if o.is_correct}
        selected = set(_submitted(submission, 'selected_options') or [])
        # A question with no correct option is malformed: never award it.
        is_correct = bool(expected) and selected == expected

    if is_correct:
        return {"is_correct": True, "feedback": question.explanation or None}
    return {"is_correct": False, "feedback": feedback or None}
