import os
import sys
import pytest

# Ensure the backend root (containing the `volley` package and `config`) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from volley import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    REGISTRATION_OPEN_DAYS = 10
    REGULAR_PLAYER_OPEN_DAYS = 3
    GUEST_REGISTRATION_OPEN_DAYS = 3
    DEFAULT_UNREGISTER_DEADLINE_HOURS = 5
    DEFAULT_MAX_PLAYERS = 14
    LOG_LEVEL = 'DEBUG'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    # Only setup and teardown hold an app context; each request pushes its own,
    # so every test client keeps its own logged-in user
    with application.app_context():
        # Ensure models are imported so tables are created
        import volley.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_user(flask_app):
    from volley.models import User

    def _make_user(username, is_admin=False, password='password'):
        with flask_app.app_context():
            user = User(username=username, display_name=username.capitalize(), is_admin=is_admin)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            db.session.refresh(user)
            db.session.expunge(user)
        return user

    return _make_user


@pytest.fixture()
def login():
    def _login(test_client, username, password='password'):
        res = test_client.post('/login', json={'username': username, 'password': password})
        assert res.status_code == 200, res.get_json()
        return res.get_json()['user']

    return _login


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
