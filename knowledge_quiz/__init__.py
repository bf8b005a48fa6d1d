from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager, verify_jwt_in_request, get_jwt_identity
from flask import g
import logging
import os

# Initialize extensions
db = SQLAlchemy()
jwt = JWTManager()

def create_app(config_object='config.Config'):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration from config.py
    app.config.from_object(config_object)

    if not app.config.get('TESTING'):
        logging.basicConfig(level=logging.INFO)

    # Ensure the instance folder exists
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize extensions with the app
    db.init_app(app)
    jwt.init_app(app)

    from .errors import QuizEngineError

    @app.errorhandler(QuizEngineError)
    def handle_engine_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.before_request
    def before_request_hook():
        # The auth endpoints must be reachable without a JWT
        if request.endpoint and (request.endpoint.startswith('auth.') or request.endpoint == 'static'):
            return

        try:
            verify_jwt_in_request()
            g.user = get_jwt_identity()
        except Exception as e:
            app.logger.info("Rejected unauthenticated request to %s: %s", request.path, e)
            return jsonify({"error": "Unauthorized", "message": "A valid access token is required"}), 401

    with app.app_context():
        # Import parts of our application
        from . import routes
        from . import auth
        from . import models # Registers the tables

        # Create database tables for our models
        db.create_all()

        # Load question banks into the database
        from .quiz_logic import load_questions_from_json
        questions_dir = app.config.get('QUESTIONS_DIR')
        if questions_dir:
            load_questions_from_json(questions_dir, db.session)

        # Register blueprints
        app.register_blueprint(routes.main_bp)
        app.register_blueprint(auth.auth_bp)

        return app
