import logging

from sqlalchemy import select, func

from .errors import ConflictError, NotFoundError
from .evaluation import evaluate_answer
from .models import QuestionAttempt
from .question_store import QuestionStore
from .quiz_logic import QuizSessionManager
from .schemas import AnswerSubmission, parse
from .storage import reading, unit_of_work

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 200


class AttemptRecorder:

    def __init__(self, session):
        self.session = session
        self.store = QuestionStore(session)

    def count_attempts(self, user_id, question_id):
        with reading(self.session):
            return self.session.scalar(
                select(func.count(QuestionAttempt.id)).where(
                    QuestionAttempt.user_id == user_id,
                    QuestionAttempt.question_id == question_id,
                )
            ) or 0

    def record_attempt(self, user_id, submission):
        """
        Evaluates a submission and stores it as an attempt.

        The attempt number is the count of earlier attempts plus one. Count
        and insert are separate statements, so two concurrent submissions
        for the same user and question can end up with the same number;
        nothing prevents that.

        Returns:
            dict with ``is_correct`` and ``feedback``.

        Raises:
            NotFoundError: the question does not exist, or the session is
                unknown or belongs to another user.
            ConflictError: the question is archived or the session is completed.
            StorageError: the store rejected the read or the insert.
        """
        submission = parse(AnswerSubmission, submission)
        question = self.store.get_question(submission.question_id)
        if question.status == 'archived':
            raise ConflictError(f"Question {question.id} is archived")
        if submission.session_id is not None:
            self._check_open_session(user_id, submission.session_id)

        result = evaluate_answer(question, submission)
        prior_count = self.count_attempts(user_id, question.id)

        selected_answer = submission.selected_answer
        if isinstance(selected_answer, bool):
            selected_answer = "true" if selected_answer else "false"

        attempt = QuestionAttempt(
            user_id=user_id,
            question_id=question.id,
            session_id=submission.session_id,
            selected_answer=selected_answer,
            selected_options=submission.selected_options,
            is_correct=result["is_correct"],
            context_type=submission.context_type,
            context_entity_id=submission.context_entity_id,
            time_spent_seconds=submission.time_spent_seconds,
            hint_used=submission.hint_used,
            attempt_number=prior_count + 1,
        )
        with unit_of_work(self.session):
            self.session.add(attempt)

        logger.info(
            "Attempt %d by %s on question %s: correct=%s",
            attempt.attempt_number, user_id, question.id, result["is_correct"],
        )
        return result

    def _check_open_session(self, user_id, session_id):
        quiz_session = QuizSessionManager(self.session).get_session(session_id)
        # Other users' sessions are reported as missing
        if quiz_session.user_id != user_id:
            raise NotFoundError(f"Quiz session {session_id} not found")
        if quiz_session.is_completed:
            raise ConflictError(f"Quiz session {session_id} is already completed")

    def get_user_attempts(self, user_id, question_id=None, limit=50):
        """A user's attempts, newest first."""
        limit = min(max(int(limit), 1), MAX_HISTORY_LIMIT)
        query = select(QuestionAttempt).where(QuestionAttempt.user_id == user_id)
        if question_id:
            query = query.where(QuestionAttempt.question_id == question_id)
        query = query.order_by(QuestionAttempt.created_at.desc()).limit(limit)
        with reading(self.session):
            return self.session.scalars(query).all()
