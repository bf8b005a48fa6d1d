from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, set_access_cookies, unset_jwt_cookies

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

@auth_bp.route('/login', methods=['POST'])
def login():
    """Issues an access token whose identity is the caller's user id."""
    payload = request.get_json(silent=True) or {}
    user_id = str(payload.get('user_id') or '').strip()
    password = payload.get('password')

    if not user_id:
        return jsonify({'error': 'ValidationError', 'message': 'user_id is required'}), 400
    if password != current_app.config['AUTH_PASSWORD']:
        return jsonify({'error': 'Unauthorized', 'message': 'Invalid password'}), 401

    access_token = create_access_token(identity=user_id, expires_delta=False)
    response = jsonify({'access_token': access_token, 'user_id': user_id})
    set_access_cookies(response, access_token)
    return response

@auth_bp.route('/logout', methods=['POST'])
def logout():
    response = jsonify({'success': True})
    unset_jwt_cookies(response)
    return response
