from typing import List, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, Field, field_validator

from .errors import ValidationError

QuestionType = Literal['mcq', 'mcq_multi', 'true_false', 'fill_blank', 'scenario']
Difficulty = Literal['easy', 'medium', 'hard', 'expert']
QuestionStatus = Literal['draft', 'pending_review', 'published', 'archived']
UsageType = Literal['sop_inline', 'lesson', 'quiz', 'certification', 'assessment', 'daily_challenge']


class OptionForm(BaseModel):
    option_text: str = Field(min_length=1)
    is_correct: bool = False
    feedback: Optional[str] = None


class QuestionForm(BaseModel):
    question_text: str
    question_type: QuestionType = 'mcq'
    difficulty_level: Difficulty = 'medium'
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    hint: Optional[str] = None
    linked_sop_id: Optional[str] = None
    linked_sop_section: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    estimated_time_seconds: int = Field(default=30, gt=0)
    points: int = Field(default=1, gt=0)
    options: List[OptionForm] = Field(default_factory=list)

    @field_validator('question_text')
    @classmethod
    def question_text_not_blank(cls, value):
        if not value.strip():
            raise ValueError('question_text must not be empty')
        return value


class QuestionUpdate(BaseModel):
    """Partial update: only the fields that were sent are applied."""
    question_text: Optional[str] = None
    question_type: Optional[QuestionType] = None
    difficulty_level: Optional[Difficulty] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    hint: Optional[str] = None
    linked_sop_id: Optional[str] = None
    linked_sop_section: Optional[str] = None
    tags: Optional[List[str]] = None
    estimated_time_seconds: Optional[int] = Field(default=None, gt=0)
    points: Optional[int] = Field(default=None, gt=0)
    options: Optional[List[OptionForm]] = None

    @field_validator('question_text')
    @classmethod
    def question_text_not_blank(cls, value):
        if value is not None and not value.strip():
            raise ValueError('question_text must not be empty')
        return value


class QuestionFilters(BaseModel):
    status: Optional[QuestionStatus] = None
    question_type: Optional[QuestionType] = None
    difficulty_level: Optional[Difficulty] = None
    linked_sop_id: Optional[str] = None
    ai_generated: Optional[bool] = None
    search: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class AnswerSubmission(BaseModel):
    question_id: str
    selected_answer: Optional[Union[bool, str]] = None
    selected_options: Optional[List[str]] = None
    time_spent_seconds: Optional[int] = Field(default=None, ge=0)
    hint_used: bool = False
    context_type: Optional[UsageType] = None
    context_entity_id: Optional[str] = None
    session_id: Optional[str] = None


class SessionStart(BaseModel):
    quiz_type: UsageType
    quiz_entity_id: Optional[str] = None
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)
    passing_score: Optional[float] = Field(default=None, ge=0, le=100)


class SessionResults(BaseModel):
    total_questions: int = Field(ge=0)
    correct_answers: int = Field(ge=0)
    total_points: int = Field(ge=0)
    earned_points: int = Field(ge=0)


class UsageLink(BaseModel):
    question_id: str
    usage_type: UsageType
    usage_entity_id: str
    display_order: int = 0
    is_required: bool = True
    weight: float = Field(default=1.0, ge=0)


class ReviewDecision(BaseModel):
    notes: Optional[str] = None


class GenerationRequest(BaseModel):
    sop_content: str = Field(min_length=1)
    sop_id: Optional[str] = None
    sop_title: Optional[str] = None
    count: int = Field(default=5, gt=0, le=50)
    types: List[QuestionType] = Field(default_factory=lambda: ['mcq', 'true_false', 'fill_blank'])
    difficulty: Difficulty = 'medium'
    include_hints: bool = True
    include_explanations: bool = True


class GeneratedOption(BaseModel):
    text: str
    is_correct: bool = False
    feedback: Optional[str] = None


class GeneratedQuestion(BaseModel):
    question_text: str
    question_type: QuestionType = 'mcq'
    difficulty_level: Difficulty = 'medium'
    options: List[GeneratedOption] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    hint: Optional[str] = None
    linked_section: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    confidence_score: Optional[float] = Field(default=None, ge=0, le=1)

    def to_form(self, linked_sop_id=None):
        """Converts the generated payload into a creatable question form."""
        return QuestionForm(
            question_text=self.question_text,
            question_type=self.question_type,
            difficulty_level=self.difficulty_level,
            correct_answer=self.correct_answer,
            explanation=self.explanation,
            hint=self.hint,
            linked_sop_id=linked_sop_id,
            linked_sop_section=self.linked_section,
            tags=self.tags,
            options=[
                OptionForm(option_text=o.text, is_correct=o.is_correct, feedback=o.feedback)
                for o in self.options
            ],
        )


def parse(model, payload):
    """Validates ``payload`` against ``model``, raising the engine's ValidationError."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload or {})
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(details) from e
