import os
from dotenv import load_dotenv

# Load environment variables from a .env file
load_dotenv()

# Define base directory for the project
BASE_DIR = os.path.abspath(os.path.dirname(__file__))
DB_DIR = os.path.join(BASE_DIR, 'database')

# Ensure the database directory exists before the app uses it
if not os.path.exists(DB_DIR):
    os.makedirs(DB_DIR)

def _read_file_content(path):
    """Helper function to read file content. Returns empty string if file not found."""
    if path and os.path.exists(path):
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    return ""

class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY', 'a_default_secret_key_for_development')
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_TOKEN_LOCATION = ["headers", "cookies"]
    JWT_COOKIE_CSRF_PROTECT = False

    # Shared password used by /auth/login
    AUTH_PASSWORD = os.environ.get('AUTH_PASSWORD', 'change-me')

    # Database configuration using an absolute path
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', f'sqlite:///{os.path.join(DB_DIR, "knowledge.db")}')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # OpenRouter LLM Configuration
    OPENROUTER_API_KEY = os.environ.get("OPENROUTER_API_KEY")
    OPENROUTER_MAX_RETRIES = int(os.environ.get("OPENROUTER_MAX_RETRIES", 3))

    # Model used to draft questions from SOP content
    GENERATION_MODEL = os.environ.get("GENERATION_MODEL", "google/gemini-2.5-pro")
    GENERATION_TEMPERATURE = float(os.environ.get("GENERATION_TEMPERATURE", 0.4))

    # Optional context for the generation prompt, loaded from a file
    GENERATION_CONTEXT_SYSTEM = _read_file_content(os.environ.get("GENERATION_CONTEXT_SYSTEM"))

    # Directory of JSON question banks seeded at startup
    QUESTIONS_DIR = os.environ.get("QUESTIONS_DIR", os.path.join(BASE_DIR, 'data', 'questions'))

    # Scoring policy
    DAILY_CHALLENGE_TARGET = int(os.environ.get("DAILY_CHALLENGE_TARGET", 3))
    DEFAULT_PASSING_SCORE = float(os.environ.get("DEFAULT_PASSING_SCORE", 70))

class TestConfig(Config):
    """Configuration used by the test suite."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    QUESTIONS_DIR = None
    AUTH_PASSWORD = 'test-password'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    OPENROUTER_API_KEY = 'test-key'
