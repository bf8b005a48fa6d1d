import hashlib
import json
import logging
import math
import os
import random

from sqlalchemy import select, func, case

from .errors import ConflictError, NotFoundError, ValidationError
from .models import Question, QuestionAttempt, QuestionUsage, QuizSession, utcnow
from .question_store import QuestionStore
from .schemas import SessionResults, SessionStart, UsageLink, parse
from .storage import reading, unit_of_work

logger = logging.getLogger(__name__)

DEFAULT_PASSING_SCORE = 70


def compute_score(results, passing_score=None, default_passing_score=DEFAULT_PASSING_SCORE):
    """
    Derives the score percentage and pass/fail from aggregate totals.

    A session without points scores 0 rather than failing on the division.
    """
    score_percentage = (
        (results.earned_points * 100) / results.total_points
        if results.total_points > 0 else 0.0
    )
    threshold = passing_score if passing_score is not None else default_passing_score
    return score_percentage, score_percentage >= threshold


class QuizSessionManager:
    """Starts and completes quiz sessions."""

    def __init__(self, session, default_passing_score=DEFAULT_PASSING_SCORE, clock=utcnow):
        self.session = session
        self.default_passing_score = default_passing_score
        self.clock = clock

    def get_session(self, session_id):
        with reading(self.session):
            quiz_session = self.session.get(QuizSession, session_id)
        if quiz_session is None:
            raise NotFoundError(f"Quiz session {session_id} not found")
        return quiz_session

    def start_quiz_session(self, user_id, settings):
        """Creates an empty session for ``user_id``."""
        settings = parse(SessionStart, settings)
        quiz_session = QuizSession(
            user_id=user_id,
            quiz_type=settings.quiz_type,
            quiz_entity_id=settings.quiz_entity_id,
            time_limit_seconds=settings.time_limit_seconds,
            passing_score=settings.passing_score,
            started_at=self.clock(),
        )
        with unit_of_work(self.session):
            self.session.add(quiz_session)
        return quiz_session

    def complete_quiz_session(self, session_id, results):
        """
        Stores the final totals of a session and decides pass/fail.

        Completion is terminal: a second call raises ConflictError.
        """
        results = parse(SessionResults, results)
        if results.correct_answers > results.total_questions:
            raise ValidationError("correct_answers cannot exceed total_questions")
        if results.earned_points > results.total_points:
            raise ValidationError("earned_points cannot exceed total_points")

        quiz_session = self.get_session(session_id)
        if quiz_session.is_completed:
            raise ConflictError(f"Quiz session {session_id} is already completed")

        score_percentage, passed = compute_score(
            results, quiz_session.passing_score, self.default_passing_score
        )
        quiz_session.completed_at = self.clock()
        quiz_session.total_questions = results.total_questions
        quiz_session.correct_answers = results.correct_answers
        quiz_session.total_points = results.total_points
        quiz_session.earned_points = results.earned_points
        quiz_session.score_percentage = score_percentage
        quiz_session.passed = passed
        with unit_of_work(self.session):
            self.session.add(quiz_session)

        logger.info("Quiz session %s completed: %.1f%% passed=%s", session_id, score_percentage, passed)
        return quiz_session

    def tally_session_results(self, session_id):
        """
        Builds session totals from the attempts recorded under it.

        Each question counts once, judged by its latest attempt, and weighs
        its ``points``.
        """
        quiz_session = self.get_session(session_id)
        with reading(self.session):
            attempts = self.session.scalars(
                select(QuestionAttempt)
                .where(
                    QuestionAttempt.session_id == session_id,
                    QuestionAttempt.user_id == quiz_session.user_id,
                )
                .order_by(QuestionAttempt.created_at, QuestionAttempt.attempt_number)
            ).all()

            latest = {}
            for attempt in attempts:
                latest[attempt.question_id] = attempt

            total_points = 0
            earned_points = 0
            correct = 0
            for attempt in latest.values():
                points = attempt.attempted_question.points
                total_points += points
                if attempt.is_correct:
                    correct += 1
                    earned_points += points

        return SessionResults(
            total_questions=len(latest),
            correct_answers=correct,
            total_points=total_points,
            earned_points=earned_points,
        )


# --- Question usages ---

def get_questions_for_context(session, usage_type, entity_id):
    """Questions linked to a context, in display order. Archived questions are left out."""
    with reading(session):
        usages = session.scalars(
            select(QuestionUsage)
            .join(Question, QuestionUsage.question_id == Question.id)
            .where(
                QuestionUsage.usage_type == usage_type,
                QuestionUsage.usage_entity_id == entity_id,
                Question.status != 'archived',
            )
            .order_by(QuestionUsage.display_order)
        ).all()
        return [u.question for u in usages if u.question is not None]

def link_question_to_context(session, link):
    link = parse(UsageLink, link)
    QuestionStore(session).get_question(link.question_id)

    with reading(session):
        existing = session.scalar(
            select(QuestionUsage).where(
                QuestionUsage.question_id == link.question_id,
                QuestionUsage.usage_type == link.usage_type,
                QuestionUsage.usage_entity_id == link.usage_entity_id,
            )
        )
    if existing is not None:
        raise ConflictError("Question is already linked to this context")

    usage = QuestionUsage(**link.model_dump())
    with unit_of_work(session):
        session.add(usage)
    return usage

def unlink_question_from_context(session, question_id, usage_type, entity_id):
    with reading(session):
        usage = session.scalar(
            select(QuestionUsage).where(
                QuestionUsage.question_id == question_id,
                QuestionUsage.usage_type == usage_type,
                QuestionUsage.usage_entity_id == entity_id,
            )
        )
    if usage is None:
        raise NotFoundError("Question is not linked to this context")
    with unit_of_work(session):
        session.delete(usage)


# --- Daily challenge selection ---

def select_daily_challenge(session, user_id, count=3, attempt_multiplier=1.5, accuracy_multiplier=1.5, rng=random):
    """
    Selects published questions for a user's daily challenge.

    Uses a weighted random draw based on the user's own history:
    Weight = (attempt_multiplier^(mean_attempts - attempts)) * (accuracy_multiplier^(mean_accuracy - accuracy))
    so rarely seen and poorly answered questions come up more often.
    """
    with reading(session):
        candidate_questions = session.scalars(
            select(Question).where(Question.status == 'published').order_by(Question.id)
        ).all()

        if not candidate_questions:
            return []

        stats = session.execute(
            select(
                QuestionAttempt.question_id,
                func.count(QuestionAttempt.id).label('attempts'),
                func.avg(case((QuestionAttempt.is_correct.is_(True), 1.0), else_=0.0)).label('accuracy'),
            )
            .where(QuestionAttempt.user_id == user_id)
            .group_by(QuestionAttempt.question_id)
        ).all()

    stats_dict = {s.question_id: {'attempts': s.attempts, 'accuracy': float(s.accuracy or 0)} for s in stats}

    candidate_ids = {q.id for q in candidate_questions}
    seen = [s for qid, s in stats_dict.items() if qid in candidate_ids]
    mean_attempts = sum(s['attempts'] for s in seen) / len(candidate_questions)
    # Neutral accuracy until the user has answered something
    mean_accuracy = sum(s['accuracy'] for s in seen) / len(seen) if seen else 0.5

    weights = []
    for q in candidate_questions:
        q_stats = stats_dict.get(q.id)
        attempts = q_stats['attempts'] if q_stats else 0
        accuracy = q_stats['accuracy'] if q_stats else mean_accuracy

        attempt_weight = math.pow(attempt_multiplier, mean_attempts - attempts)
        accuracy_weight = math.pow(accuracy_multiplier, mean_accuracy - accuracy)
        weights.append(attempt_weight * accuracy_weight)

    k = min(count, len(candidate_questions))
    selected_questions = []
    population = list(candidate_questions)

    # choices() samples with replacement, so draw one at a time
    while len(selected_questions) < k and population:
        chosen = rng.choices(population, weights=weights, k=1)[0]
        selected_questions.append(chosen)

        idx = population.index(chosen)
        population.pop(idx)
        weights.pop(idx)

    return selected_questions


# --- Seeding ---

def load_questions_from_json(directory, session):
    """
    Loads all .json question banks from a directory as published questions.

    This function is idempotent. It calculates a SHA-256 digest of the
    question text and skips questions whose digest is already stored.
    Files that cannot be read or parsed are logged and skipped.

    Returns:
        int, the number of questions added.
    """
    if not directory or not os.path.exists(directory):
        logger.warning("Question bank directory not found: %s", directory)
        return 0

    added = 0
    for filename in sorted(os.listdir(directory)):
        if not filename.endswith('.json'):
            continue
        file_path = os.path.join(directory, filename)
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                questions_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Error loading question bank %s: %s", filename, e)
            continue
        if not isinstance(questions_data, list):
            logger.warning("Question bank %s is not a JSON list", filename)
            continue

        # The file name doubles as a tag, like a category
        default_tag = os.path.splitext(filename)[0].replace('_', '-').lower()

        for q_data in questions_data:
            if not isinstance(q_data, dict):
                continue
            question_text = (q_data.get('question_text') or '').strip()
            if not question_text:
                continue

            digest = hashlib.sha256(question_text.encode('utf-8')).hexdigest()
            with reading(session):
                exists = session.scalar(select(Question.id).where(Question.digest == digest))
            if exists:
                continue

            q_data = dict(q_data)
            q_data.setdefault('tags', [default_tag])
            try:
                question = QuestionStore(session).create_question(q_data, user_id=None)
            except ValidationError as e:
                logger.warning("Skipping invalid question in %s: %s", filename, e)
                continue

            question.digest = digest
            question.status = 'published'
            with unit_of_work(session):
                session.add(question)
            added += 1

    logger.info("Question banks loaded: %d new questions", added)
    return added
