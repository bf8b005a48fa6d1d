import logging

from .errors import ConflictError, ValidationError
from .models import utcnow
from .question_store import QuestionStore
from .storage import unit_of_work

logger = logging.getLogger(__name__)

# action -> (allowed source states, target state)
TRANSITIONS = {
    'submit': (('draft',), 'pending_review'),
    'approve': (('pending_review',), 'published'),
    'reject': (('pending_review',), 'draft'),
    'archive': (('draft', 'pending_review', 'published'), 'archived'),
}


class ReviewWorkflow:
    """
    Moves questions through their lifecycle.

        draft -> pending_review -> published
                     |
                     +-> draft (rejected, notes required)

        draft | pending_review | published -> archived (terminal)

    Authors cannot review their own questions.
    """

    def __init__(self, session, clock=utcnow):
        self.session = session
        self.clock = clock
        self.store = QuestionStore(session)

    def _transition(self, question_id, action):
        sources, target = TRANSITIONS[action]
        question = self.store.get_question(question_id)
        if question.status not in sources:
            raise ConflictError(
                f"Cannot {action} question {question_id} in status '{question.status}'"
            )
        question.status = target
        return question

    def submit_for_review(self, question_id):
        with unit_of_work(self.session):
            question = self._transition(question_id, 'submit')
        logger.info("Question %s submitted for review", question_id)
        return question

    def _check_reviewer(self, question_id, reviewer_id):
        question = self.store.get_question(question_id)
        if question.created_by is not None and question.created_by == reviewer_id:
            raise ConflictError(f"Question {question_id} cannot be reviewed by its author")

    def approve(self, question_id, reviewer_id, notes=None):
        self._check_reviewer(question_id, reviewer_id)
        with unit_of_work(self.session):
            question = self._transition(question_id, 'approve')
            self._record_review(question, reviewer_id, notes)
        logger.info("Question %s published by %s", question_id, reviewer_id)
        return question

    def reject(self, question_id, reviewer_id, notes):
        if not (notes or '').strip():
            raise ValidationError("Rejecting a question requires review notes")
        self._check_reviewer(question_id, reviewer_id)
        with unit_of_work(self.session):
            question = self._transition(question_id, 'reject')
            self._record_review(question, reviewer_id, notes)
        logger.info("Question %s sent back to draft by %s", question_id, reviewer_id)
        return question

    def archive(self, question_id):
        with unit_of_work(self.session):
            question = self._transition(question_id, 'archive')
        logger.info("Question %s archived", question_id)
        return question

    def _record_review(self, question, reviewer_id, notes):
        question.reviewed_by = reviewer_id
        question.reviewed_at = self.clock()
        question.review_notes = notes
