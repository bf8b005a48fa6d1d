from flask import Blueprint, request, jsonify, current_app, g
from .analytics import AnalyticsAggregator
from .attempts import AttemptRecorder
from .errors import ForbiddenError, NotFoundError
from .generation import generate_questions, save_generated_questions
from .question_store import MAX_PAGE_SIZE, QuestionStore, is_visible_to
from .quiz_logic import (
    QuizSessionManager, get_questions_for_context, link_question_to_context,
    unlink_question_from_context, select_daily_challenge,
)
from .review import ReviewWorkflow
from .schemas import GenerationRequest, ReviewDecision, parse
from . import db

main_bp = Blueprint('main', __name__, url_prefix='/api')

def _payload():
    return request.get_json(silent=True) or {}

def _bool_arg(name):
    value = request.args.get(name)
    if value is None:
        return None
    return value.lower() in ('1', 'true', 'yes')

def _question_for_learner(question):
    """Question as shown while answering: no answers, no feedback."""
    data = question.to_dict()
    for key in ('correct_answer', 'explanation', 'review_notes', 'digest'):
        data.pop(key, None)
    data['options'] = [
        {'id': o['id'], 'option_text': o['option_text'], 'display_order': o['display_order']}
        for o in data['options']
    ]
    return data

def _owned_session(manager, session_id):
    quiz_session = manager.get_session(session_id)
    # Other users' sessions are reported as missing
    if quiz_session.user_id != g.user:
        raise NotFoundError(f"Quiz session {session_id} not found")
    return quiz_session

def _visible_question(question_id):
    question = QuestionStore(db.session).get_question(question_id)
    # Hidden drafts are reported as missing
    if not is_visible_to(question, g.user):
        raise NotFoundError(f"Question {question_id} not found")
    return question

def _owned_question(question_id):
    question = _visible_question(question_id)
    if question.created_by != g.user:
        raise ForbiddenError(f"Only the author can modify question {question_id}")
    return question

def _analytics():
    return AnalyticsAggregator(db.session, daily_challenge_target=current_app.config['DAILY_CHALLENGE_TARGET'])

# --- Questions ---

@main_bp.route('/questions', methods=['GET'])
def questions_list():
    """Lists questions with optional filters and pagination."""
    filters = {
        'status': request.args.get('status'),
        'question_type': request.args.get('question_type'),
        'difficulty_level': request.args.get('difficulty_level'),
        'linked_sop_id': request.args.get('linked_sop_id'),
        'ai_generated': _bool_arg('ai_generated'),
        'search': request.args.get('search'),
        'tags': [t for t in request.args.get('tags', '').split(',') if t],
    }
    page = request.args.get('page', 1, type=int)
    page_size = min(max(request.args.get('page_size', 20, type=int), 1), MAX_PAGE_SIZE)

    questions, total = QuestionStore(db.session).list_questions(filters, page, page_size, viewer_id=g.user)
    return jsonify({
        'questions': [q.to_dict() for q in questions],
        'total': total,
        'page': page,
        'page_size': page_size,
    })

@main_bp.route('/questions', methods=['POST'])
def create_question():
    question = QuestionStore(db.session).create_question(_payload(), g.user)
    return jsonify(question.to_dict()), 201

@main_bp.route('/questions/<question_id>', methods=['GET'])
def question_detail(question_id):
    return jsonify(_visible_question(question_id).to_dict())

@main_bp.route('/questions/<question_id>', methods=['PATCH'])
def update_question(question_id):
    payload = _payload()
    change_reason = payload.pop('change_reason', None)
    _owned_question(question_id)
    question = QuestionStore(db.session).update_question(question_id, payload, g.user, change_reason)
    return jsonify(question.to_dict())

@main_bp.route('/questions/<question_id>', methods=['DELETE'])
def delete_question(question_id):
    _owned_question(question_id)
    QuestionStore(db.session).delete_question(question_id)
    return '', 204

@main_bp.route('/questions/<question_id>/versions', methods=['GET'])
def question_versions(question_id):
    _visible_question(question_id)
    versions = QuestionStore(db.session).get_versions(question_id)
    return jsonify([v.to_dict() for v in versions])

# --- Review workflow ---

@main_bp.route('/questions/<question_id>/submit', methods=['POST'])
def submit_for_review(question_id):
    _owned_question(question_id)
    return jsonify(ReviewWorkflow(db.session).submit_for_review(question_id).to_dict())

@main_bp.route('/questions/<question_id>/approve', methods=['POST'])
def approve_question(question_id):
    decision = parse(ReviewDecision, _payload())
    return jsonify(ReviewWorkflow(db.session).approve(question_id, g.user, decision.notes).to_dict())

@main_bp.route('/questions/<question_id>/reject', methods=['POST'])
def reject_question(question_id):
    decision = parse(ReviewDecision, _payload())
    return jsonify(ReviewWorkflow(db.session).reject(question_id, g.user, decision.notes).to_dict())

@main_bp.route('/questions/<question_id>/archive', methods=['POST'])
def archive_question(question_id):
    _owned_question(question_id)
    return jsonify(ReviewWorkflow(db.session).archive(question_id).to_dict())

# --- AI generation ---

@main_bp.route('/questions/generate', methods=['POST'])
def generate():
    """Generates draft questions; stores them when ``save`` is true."""
    payload = _payload()
    save = bool(payload.pop('save', False))
    generation_request = parse(GenerationRequest, payload)

    generated = generate_questions(generation_request, current_app.config)
    response = {'questions': [q.model_dump() for q in generated]}

    if save:
        saved = save_generated_questions(
            QuestionStore(db.session), generated, g.user,
            model_name=current_app.config.get('GENERATION_MODEL'),
            linked_sop_id=generation_request.sop_id,
        )
        response['saved'] = [q.to_dict() for q in saved]
    return jsonify(response)

# --- Attempts ---

@main_bp.route('/attempts', methods=['POST'])
def record_attempt():
    """Evaluates and records one answer for the current user."""
    result = AttemptRecorder(db.session).record_attempt(g.user, _payload())
    return jsonify(result), 201

@main_bp.route('/attempts', methods=['GET'])
def attempts_list():
    attempts = AttemptRecorder(db.session).get_user_attempts(
        g.user,
        question_id=request.args.get('question_id'),
        limit=request.args.get('limit', 50, type=int),
    )
    return jsonify([a.to_dict() for a in attempts])

# --- Quiz sessions ---

@main_bp.route('/sessions', methods=['POST'])
def start_session():
    quiz_session = QuizSessionManager(db.session).start_quiz_session(g.user, _payload())
    return jsonify(quiz_session.to_dict()), 201

@main_bp.route('/sessions/<session_id>', methods=['GET'])
def session_detail(session_id):
    manager = QuizSessionManager(db.session)
    return jsonify(_owned_session(manager, session_id).to_dict())

@main_bp.route('/sessions/<session_id>/complete', methods=['POST'])
def complete_session(session_id):
    """Completes a session with the posted totals, or with totals tallied from its attempts."""
    manager = QuizSessionManager(db.session, default_passing_score=current_app.config['DEFAULT_PASSING_SCORE'])
    _owned_session(manager, session_id)

    results = _payload() or manager.tally_session_results(session_id)
    return jsonify(manager.complete_quiz_session(session_id, results).to_dict())

# --- Question usages ---

@main_bp.route('/usages/<usage_type>/<entity_id>', methods=['GET'])
def context_questions(usage_type, entity_id):
    questions = get_questions_for_context(db.session, usage_type, entity_id)
    return jsonify([_question_for_learner(q) for q in questions])

@main_bp.route('/usages', methods=['POST'])
def link_usage():
    usage = link_question_to_context(db.session, _payload())
    return jsonify(usage.to_dict()), 201

@main_bp.route('/usages', methods=['DELETE'])
def unlink_usage():
    payload = _payload()
    unlink_question_from_context(
        db.session, payload.get('question_id'), payload.get('usage_type'), payload.get('usage_entity_id')
    )
    return '', 204

# --- Analytics ---

@main_bp.route('/questions/<question_id>/analytics', methods=['GET'])
def question_analytics(question_id):
    return jsonify(_analytics().get_question_analytics(question_id))

@main_bp.route('/analytics/me', methods=['GET'])
def my_stats():
    return jsonify(_analytics().get_user_question_stats(g.user))

@main_bp.route('/daily-challenge/status', methods=['GET'])
def daily_challenge_status():
    return jsonify(_analytics().get_daily_challenge_status(g.user))

@main_bp.route('/daily-challenge', methods=['GET'])
def daily_challenge():
    """Picks today's challenge questions for the current user."""
    questions = select_daily_challenge(
        db.session, g.user, count=current_app.config['DAILY_CHALLENGE_TARGET']
    )
    return jsonify([_question_for_learner(q) for q in questions])
