"""Question Store: CRUD over questions and their answer options."""
import logging

from sqlalchemy import select, func, or_

from .errors import ConflictError, NotFoundError, ValidationError
from .models import OPTION_TYPES, Question, QuestionOption, QuestionVersion, utcnow
from .schemas import QuestionFilters, QuestionForm, QuestionUpdate, parse
from .storage import reading, unit_of_work

logger = logging.getLogger(__name__)

TRUE_FALSE_ANSWERS = ('true', 'false')
REQUIRED_FIELDS = ('question_text', 'question_type', 'difficulty_level', 'tags', 'estimated_time_seconds', 'points', 'options')
MAX_PAGE_SIZE = 100


def check_answer_rule(question_type, correct_answer, options):
    """
    Enforces the correct-answer invariant of a question.

    Option-based questions need at least one option marked correct; every
    other type needs a non-empty correct_answer.
    """
    if question_type in OPTION_TYPES:
        if not options:
            raise ValidationError(f"{question_type} questions need answer options")
        if not any(o.is_correct for o in options):
            raise ValidationError(f"{question_type} questions need at least one correct option")
        return

    if not (correct_answer or '').strip():
        raise ValidationError(f"{question_type} questions need a correct_answer")
    if question_type == 'true_false' and correct_answer not in TRUE_FALSE_ANSWERS:
        raise ValidationError("true_false correct_answer must be 'true' or 'false'")


def is_visible_to(question, user_id):
    """Published questions are public; any other status only to its author and reviewer."""
    return question.status == 'published' or user_id in (question.created_by, question.reviewed_by)


def _build_options(option_forms):
    # Ordinals are always re-assigned from zero
    return [
        QuestionOption(
            option_text=o.option_text,
            is_correct=o.is_correct,
            feedback=o.feedback,
            display_order=idx,
        )
        for idx, o in enumerate(option_forms)
    ]


class QuestionStore:
    """Reads and writes questions through an explicitly provided session."""

    def __init__(self, session):
        self.session = session

    def list_questions(self, filters=None, page=1, page_size=20, viewer_id=None):
        """
        Lists questions newest first.

        With ``viewer_id`` only published questions and those the viewer
        wrote or reviewed are listed.

        Returns:
            tuple of (questions on the requested page, total matching count).
        """
        filters = parse(QuestionFilters, filters)
        page = max(int(page), 1)
        page_size = min(max(int(page_size), 1), MAX_PAGE_SIZE)

        query = select(Question)
        if viewer_id is not None:
            query = query.where(or_(
                Question.status == 'published',
                Question.created_by == viewer_id,
                Question.reviewed_by == viewer_id,
            ))
        if filters.status:
            query = query.where(Question.status == filters.status)
        if filters.question_type:
            query = query.where(Question.question_type == filters.question_type)
        if filters.difficulty_level:
            query = query.where(Question.difficulty_level == filters.difficulty_level)
        if filters.linked_sop_id:
            query = query.where(Question.linked_sop_id == filters.linked_sop_id)
        if filters.ai_generated is not None:
            query = query.where(Question.ai_generated == filters.ai_generated)
        if filters.search:
            query = query.where(Question.question_text.ilike(f"%{filters.search}%"))
        query = query.order_by(Question.created_at.desc(), Question.id)

        offset = (page - 1) * page_size
        with reading(self.session):
            if filters.tags:
                # Tags live in a JSON column; overlap is checked in Python
                wanted = set(filters.tags)
                matching = [
                    q for q in self.session.scalars(query).all()
                    if wanted.intersection(q.tags or [])
                ]
                return matching[offset:offset + page_size], len(matching)

            total = self.session.scalar(select(func.count()).select_from(query.subquery()))
            questions = self.session.scalars(query.offset(offset).limit(page_size)).all()
        return list(questions), total or 0

    def get_question(self, question_id):
        """Loads a question with its options or raises NotFoundError."""
        with reading(self.session):
            question = self.session.get(Question, question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found")
        return question

    def create_question(self, form, user_id, ai_generated=False, ai_model_used=None, ai_confidence_score=None):
        """Creates a question in draft status."""
        form = parse(QuestionForm, form)
        options = form.options if form.question_type in OPTION_TYPES else []
        check_answer_rule(form.question_type, form.correct_answer, options)

        question = Question(
            question_text=form.question_text.strip(),
            question_type=form.question_type,
            difficulty_level=form.difficulty_level,
            correct_answer=form.correct_answer,
            explanation=form.explanation,
            hint=form.hint,
            linked_sop_id=form.linked_sop_id,
            linked_sop_section=form.linked_sop_section,
            tags=list(form.tags),
            estimated_time_seconds=form.estimated_time_seconds,
            points=form.points,
            ai_generated=ai_generated,
            ai_model_used=ai_model_used,
            ai_confidence_score=ai_confidence_score,
            status='draft',
            created_by=user_id,
            options=_build_options(options),
        )
        with unit_of_work(self.session):
            self.session.add(question)
        logger.info("Question %s created by %s", question.id, user_id)
        return question

    def update_question(self, question_id, changes, user_id, change_reason=None):
        """
        Applies a partial update.

        The previous state is kept as a version snapshot. When ``options`` is
        part of the update the whole option set is replaced.
        """
        changes = parse(QuestionUpdate, changes)
        fields = {
            name: value for name, value in changes.model_dump(exclude_unset=True).items()
            if value is not None or name not in REQUIRED_FIELDS
        }
        question = self.get_question(question_id)
        if question.status == 'archived':
            raise ConflictError(f"Question {question_id} is archived")

        new_type = fields.get('question_type') or question.question_type
        new_answer = fields['correct_answer'] if 'correct_answer' in fields else question.correct_answer
        if new_type not in OPTION_TYPES:
            new_options = []
        elif changes.options is not None:
            new_options = changes.options
        else:
            new_options = question.options
        check_answer_rule(new_type, new_answer, new_options)

        snapshot = QuestionVersion(
            question_id=question.id,
            version_number=question.version,
            data_snapshot=question.to_dict(),
            changed_by=user_id,
            change_reason=change_reason,
        )

        fields.pop('options', None)
        for name, value in fields.items():
            setattr(question, name, value)
        if new_type not in OPTION_TYPES:
            question.options = []
        elif changes.options is not None:
            question.options = _build_options(changes.options)
        question.version = question.version + 1
        question.updated_at = utcnow()

        with unit_of_work(self.session):
            self.session.add(snapshot)
        return question

    def delete_question(self, question_id):
        question = self.get_question(question_id)
        with unit_of_work(self.session):
            self.session.delete(question)
        logger.info("Question %s deleted", question_id)

    def get_versions(self, question_id):
        """Version history of a question, newest first."""
        self.get_question(question_id)
        with reading(self.session):
            return self.session.scalars(
                select(QuestionVersion)
                .where(QuestionVersion.question_id == question_id)
                .order_by(QuestionVersion.version_number.desc())
            ).all()
