import datetime

import pytest

from knowledge_quiz import create_app, db
from knowledge_quiz.models import QuestionAttempt
from knowledge_quiz.question_store import QuestionStore

NOW = datetime.datetime(2026, 10, 16, 12, 0, 0)


@pytest.fixture
def app():
    app = create_app('config.TestConfig')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def store(session):
    return QuestionStore(session)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client, user_id):
    response = client.post('/auth/login', json={'user_id': user_id, 'password': 'test-password'})
    assert response.status_code == 200
    client.environ_base['HTTP_AUTHORIZATION'] = f"Bearer {response.get_json()['access_token']}"
    return client


@pytest.fixture
def login(app):
    """Returns a fresh client authenticated as the given user."""
    return lambda user_id: _login(app.test_client(), user_id)


@pytest.fixture
def auth_client(login):
    return login('user-1')


@pytest.fixture
def reviewer(login):
    return login('user-2')


@pytest.fixture
def make_question(store):
    """Creates a question; mcq with one right and one wrong option by default."""
    def _make(**overrides):
        form = {
            'question_text': 'Which towel colour is used for pool service?',
            'question_type': 'mcq',
            'explanation': 'Pool towels are blue.',
            'options': [
                {'option_text': 'White', 'is_correct': False, 'feedback': 'try again'},
                {'option_text': 'Blue', 'is_correct': True},
            ],
        }
        form.update(overrides)
        return store.create_question(form, user_id='author-1')
    return _make


@pytest.fixture
def add_attempt(session):
    """Inserts an attempt row directly, with a chosen timestamp."""
    def _add(user_id, question_id, created_at, is_correct=True, **fields):
        attempt = QuestionAttempt(
            user_id=user_id,
            question_id=question_id,
            is_correct=is_correct,
            created_at=created_at,
            **fields,
        )
        session.add(attempt)
        session.commit()
        return attempt
    return _add
