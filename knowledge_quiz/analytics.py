import datetime
import logging

from sqlalchemy import select, func

from .errors import StorageError
from .models import QuestionAttempt, utcnow
from .storage import reading

logger = logging.getLogger(__name__)

DAILY_CHALLENGE_TARGET = 3
DAILY_CHALLENGE_CONTEXT = 'daily_challenge'

# Difficulty check thresholds (accuracy %), judged once enough attempts exist
TOO_EASY_ACCURACY = 85
TOO_HARD_ACCURACY = 40
MIN_ATTEMPTS_FOR_DIFFICULTY = 5


def _rate(part, total):
    return (part / total) * 100 if total > 0 else 0


def compute_streak(activity_dates, today):
    """
    Counts consecutive calendar days of activity ending today or yesterday.

    Args:
        activity_dates: iterable of ``datetime.date`` (duplicates allowed).
        today: the reference ``datetime.date``.

    Returns:
        int, 0 when the latest activity is older than yesterday.
    """
    sorted_dates = sorted(set(activity_dates), reverse=True)
    if not sorted_dates:
        return 0

    newest = sorted_dates[0]
    if newest not in (today, today - datetime.timedelta(days=1)):
        return 0

    streak = 1
    expected = newest
    for day in sorted_dates[1:]:
        expected = expected - datetime.timedelta(days=1)
        if day != expected:
            break
        streak += 1
    return streak


def judge_difficulty(total_attempts, accuracy_rate):
    if total_attempts < MIN_ATTEMPTS_FOR_DIFFICULTY:
        return 'accurate'
    if accuracy_rate >= TOO_EASY_ACCURACY:
        return 'too_easy'
    if accuracy_rate < TOO_HARD_ACCURACY:
        return 'too_hard'
    return 'accurate'


class AnalyticsAggregator:
    """
    Statistics derived from the attempt history.

    Dashboards read these, so a failing query degrades to a zeroed result
    instead of an error. Days are UTC calendar days.
    """

    def __init__(self, session, clock=utcnow, daily_challenge_target=DAILY_CHALLENGE_TARGET):
        self.session = session
        self.clock = clock
        self.daily_challenge_target = daily_challenge_target

    def _today(self):
        return self.clock().date()

    def get_question_analytics(self, question_id):
        """Accuracy, timing and hint usage over every attempt at a question."""
        try:
            with reading(self.session):
                attempts = self.session.execute(
                    select(
                        QuestionAttempt.is_correct,
                        QuestionAttempt.time_spent_seconds,
                        QuestionAttempt.hint_used,
                    ).where(QuestionAttempt.question_id == question_id)
                ).all()
        except StorageError as e:
            logger.warning("Question analytics unavailable for %s: %s", question_id, e)
            attempts = []

        total = len(attempts)
        correct = sum(1 for a in attempts if a.is_correct)
        total_time = sum(a.time_spent_seconds or 0 for a in attempts)
        hints_used = sum(1 for a in attempts if a.hint_used)
        accuracy_rate = _rate(correct, total)

        return {
            'question_id': question_id,
            'total_attempts': total,
            'correct_attempts': correct,
            'accuracy_rate': accuracy_rate,
            'avg_time_seconds': total_time / total if total > 0 else 0,
            'hint_usage_rate': _rate(hints_used, total),
            'difficulty_validation': judge_difficulty(total, accuracy_rate),
        }

    def get_user_question_stats(self, user_id):
        """A user's accuracy across all questions plus their daily streak."""
        try:
            with reading(self.session):
                attempts = self.session.execute(
                    select(
                        QuestionAttempt.is_correct,
                        QuestionAttempt.time_spent_seconds,
                        QuestionAttempt.hint_used,
                        QuestionAttempt.created_at,
                    )
                    .where(QuestionAttempt.user_id == user_id)
                    .order_by(QuestionAttempt.created_at.desc())
                ).all()
        except StorageError as e:
            logger.warning("User stats unavailable for %s: %s", user_id, e)
            attempts = []

        total = len(attempts)
        correct = sum(1 for a in attempts if a.is_correct)
        total_time = sum(a.time_spent_seconds or 0 for a in attempts)
        hints_used = sum(1 for a in attempts if a.hint_used)
        streak = compute_streak(
            (a.created_at.date() for a in attempts if a.created_at is not None),
            self._today(),
        )

        return {
            'user_id': user_id,
            'total_attempts': total,
            'correct_answers': correct,
            'accuracy_rate': _rate(correct, total),
            'avg_time_seconds': total_time / total if total > 0 else 0,
            'hint_usage_rate': _rate(hints_used, total),
            'total_time_spent': total_time,
            'recent_streak': streak,
        }

    def get_daily_challenge_status(self, user_id):
        """Whether the user has answered enough daily challenge questions today."""
        day_start = datetime.datetime.combine(self._today(), datetime.time.min)
        day_end = day_start + datetime.timedelta(days=1)
        try:
            with reading(self.session):
                count = self.session.scalar(
                    select(func.count(QuestionAttempt.id)).where(
                        QuestionAttempt.user_id == user_id,
                        QuestionAttempt.context_type == DAILY_CHALLENGE_CONTEXT,
                        QuestionAttempt.created_at >= day_start,
                        QuestionAttempt.created_at < day_end,
                    )
                ) or 0
        except StorageError as e:
            logger.warning("Daily challenge status unavailable for %s: %s", user_id, e)
            count = 0

        return {
            'answered_today': count,
            'target': self.daily_challenge_target,
            'completed': count >= self.daily_challenge_target,
        }
