from . import db
import datetime
import uuid

QUESTION_TYPES = ('mcq', 'mcq_multi', 'true_false', 'fill_blank', 'scenario')
OPTION_TYPES = ('mcq', 'mcq_multi')
DIFFICULTY_LEVELS = ('easy', 'medium', 'hard', 'expert')
QUESTION_STATUSES = ('draft', 'pending_review', 'published', 'archived')
USAGE_TYPES = ('sop_inline', 'lesson', 'quiz', 'certification', 'assessment', 'daily_challenge')


def utcnow():
    """Naive UTC timestamp, the granularity every stored date uses."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def new_id():
    return str(uuid.uuid4())


class Question(db.Model):
    """A reusable assessment item with a defined correct-answer rule."""
    __tablename__ = 'knowledge_questions'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    question_text = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.String(20), nullable=False, default='mcq')
    difficulty_level = db.Column(db.String(20), nullable=False, default='medium')

    correct_answer = db.Column(db.Text, nullable=True) # 'true'/'false' for true_false, the expected text for fill_blank
    explanation = db.Column(db.Text, nullable=True)
    hint = db.Column(db.Text, nullable=True)

    linked_sop_id = db.Column(db.String(36), nullable=True, index=True)
    linked_sop_section = db.Column(db.String, nullable=True)
    digest = db.Column(db.String(64), unique=True, nullable=True) # SHA-256 of the text, set for questions seeded from JSON

    tags = db.Column(db.JSON, nullable=False, default=list)
    estimated_time_seconds = db.Column(db.Integer, nullable=False, default=30)
    points = db.Column(db.Integer, nullable=False, default=1)

    ai_generated = db.Column(db.Boolean, nullable=False, default=False)
    ai_model_used = db.Column(db.String, nullable=True)
    ai_confidence_score = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(20), nullable=False, default='draft', index=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    reviewed_by = db.Column(db.String(36), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    review_notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    options = db.relationship(
        'QuestionOption', backref='question', lazy=True,
        order_by='QuestionOption.display_order',
        cascade="all, delete-orphan",
    )
    usages = db.relationship('QuestionUsage', backref='question', lazy=True, cascade="all, delete-orphan")
    versions = db.relationship('QuestionVersion', backref='question', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        db.CheckConstraint('points > 0', name='valid_points'),
        db.CheckConstraint('estimated_time_seconds > 0', name='valid_time'),
    )

    def to_dict(self, include_options=True):
        data = {
            'id': self.id,
            'question_text': self.question_text,
            'question_type': self.question_type,
            'difficulty_level': self.difficulty_level,
            'correct_answer': self.correct_answer,
            'explanation': self.explanation,
            'hint': self.hint,
            'linked_sop_id': self.linked_sop_id,
            'linked_sop_section': self.linked_sop_section,
            'tags': list(self.tags or []),
            'estimated_time_seconds': self.estimated_time_seconds,
            'points': self.points,
            'ai_generated': self.ai_generated,
            'ai_model_used': self.ai_model_used,
            'ai_confidence_score': self.ai_confidence_score,
            'status': self.status,
            'version': self.version,
            'reviewed_by': self.reviewed_by,
            'reviewed_at': _isoformat(self.reviewed_at),
            'review_notes': self.review_notes,
            'created_by': self.created_by,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }
        if include_options:
            data['options'] = [o.to_dict() for o in self.options]
        return data

    def __repr__(self):
        return f"<Question id={self.id} type='{self.question_type}' status='{self.status}'>"

class QuestionOption(db.Model):
    """One selectable choice of an mcq/mcq_multi question."""
    __tablename__ = 'knowledge_question_options'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    question_id = db.Column(db.String(36), db.ForeignKey('knowledge_questions.id', ondelete='CASCADE'), nullable=False, index=True)
    option_text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    feedback = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'question_id': self.question_id,
            'option_text': self.option_text,
            'is_correct': self.is_correct,
            'display_order': self.display_order,
            'feedback': self.feedback,
        }

    def __repr__(self):
        return f"<QuestionOption id={self.id} order={self.display_order} correct={self.is_correct}>"

class QuestionUsage(db.Model):
    """Links a question to a consuming context (SOP, lesson, quiz...)."""
    __tablename__ = 'knowledge_question_usages'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    question_id = db.Column(db.String(36), db.ForeignKey('knowledge_questions.id', ondelete='CASCADE'), nullable=False, index=True)
    usage_type = db.Column(db.String(20), nullable=False)
    usage_entity_id = db.Column(db.String(36), nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    weight = db.Column(db.Float, nullable=False, default=1.0) # Weighted scoring
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('question_id', 'usage_type', 'usage_entity_id', name='uq_question_usage'),
        db.Index('idx_question_usages_entity', 'usage_type', 'usage_entity_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'question_id': self.question_id,
            'usage_type': self.usage_type,
            'usage_entity_id': self.usage_entity_id,
            'display_order': self.display_order,
            'is_required': self.is_required,
            'weight': self.weight,
        }

class QuestionAttempt(db.Model):
    """One immutable record of a user answering one question once."""
    __tablename__ = 'knowledge_question_attempts'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    question_id = db.Column(db.String(36), db.ForeignKey('knowledge_questions.id', ondelete='CASCADE'), nullable=False, index=True)
    session_id = db.Column(db.String(36), nullable=True, index=True)

    selected_answer = db.Column(db.Text, nullable=True) # Option id for mcq, 'true'/'false', or free text
    selected_options = db.Column(db.JSON, nullable=True) # Option ids for mcq_multi
    is_correct = db.Column(db.Boolean, nullable=False, default=False)

    context_type = db.Column(db.String(20), nullable=True)
    context_entity_id = db.Column(db.String(36), nullable=True)

    time_spent_seconds = db.Column(db.Integer, nullable=True)
    attempt_number = db.Column(db.Integer, nullable=False, default=1) # Not unique: concurrent writers may share a number
    hint_used = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    attempted_question = db.relationship('Question', lazy=True)

    __table_args__ = (
        db.Index('idx_attempts_context', 'context_type', 'context_entity_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'question_id': self.question_id,
            'session_id': self.session_id,
            'selected_answer': self.selected_answer,
            'selected_options': self.selected_options,
            'is_correct': self.is_correct,
            'context_type': self.context_type,
            'context_entity_id': self.context_entity_id,
            'time_spent_seconds': self.time_spent_seconds,
            'attempt_number': self.attempt_number,
            'hint_used': self.hint_used,
            'created_at': _isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<QuestionAttempt user_id={self.user_id} question_id={self.question_id} n={self.attempt_number}>"

class QuizSession(db.Model):
    """A bounded grouping of attempts scored together."""
    __tablename__ = 'knowledge_quiz_sessions'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    quiz_type = db.Column(db.String(20), nullable=False)
    quiz_entity_id = db.Column(db.String(36), nullable=True)

    started_at = db.Column(db.DateTime, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    total_questions = db.Column(db.Integer, nullable=False, default=0)
    correct_answers = db.Column(db.Integer, nullable=False, default=0)
    total_points = db.Column(db.Integer, nullable=False, default=0)
    earned_points = db.Column(db.Integer, nullable=False, default=0)
    score_percentage = db.Column(db.Float, nullable=True)
    passed = db.Column(db.Boolean, nullable=True)

    time_limit_seconds = db.Column(db.Integer, nullable=True)
    passing_score = db.Column(db.Float, nullable=True)

    @property
    def is_completed(self):
        return self.completed_at is not None

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'quiz_type': self.quiz_type,
            'quiz_entity_id': self.quiz_entity_id,
            'started_at': _isoformat(self.started_at),
            'completed_at': _isoformat(self.completed_at),
            'total_questions': self.total_questions,
            'correct_answers': self.correct_answers,
            'total_points': self.total_points,
            'earned_points': self.earned_points,
            'score_percentage': self.score_percentage,
            'passed': self.passed,
            'time_limit_seconds': self.time_limit_seconds,
            'passing_score': self.passing_score,
        }

    def __repr__(self):
        return f"<QuizSession id={self.id} completed={self.is_completed}>"

class QuestionVersion(db.Model):
    """Snapshot of a question taken before each edit."""
    __tablename__ = 'knowledge_question_versions'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    question_id = db.Column(db.String(36), db.ForeignKey('knowledge_questions.id', ondelete='CASCADE'), nullable=False, index=True)
    version_number = db.Column(db.Integer, nullable=False)
    data_snapshot = db.Column(db.JSON, nullable=False)
    changed_by = db.Column(db.String(36), nullable=True)
    changed_at = db.Column(db.DateTime, default=utcnow)
    change_reason = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.UniqueConstraint('question_id', 'version_number', name='uq_question_version'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'question_id': self.question_id,
            'version_number': self.version_number,
            'data_snapshot': self.data_snapshot,
            'changed_by': self.changed_by,
            'changed_at': _isoformat(self.changed_at),
            'change_reason': self.change_reason,
        }

def _isoformat(value):
    return value.isoformat() if value else None
