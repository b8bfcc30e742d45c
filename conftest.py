import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from eixo import create_app
from eixo.database import get_db, init_db

API_KEY = 'test-customer-key'


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'DATABASE': str(tmp_path / 'eixo-test.db'),
        'JWT_SECRET_KEY': 'test-jwt-secret-key-with-32-bytes!!',
        'ADMIN_EMAIL': 'admin@eixo.test',
        'ADMIN_PASSWORD': 'admin123',
        'CUSTOMER_API_KEY': API_KEY,
        'AI_API_KEY': 'test-ai-key',
        'SMTP_HOST': None,
    })
    init_db(app)
    yield app

@pytest.fixture
def client(app):
    return app.test_client()

@pytest.fixture
def make_user(app):
    def _make_user(role, email=None, nome=None, password='senha123', must_change_password=0):
        email = email or f'{role}@teste.local'
        with app.app_context():
            db = get_db()
            cur = db.execute('''
                INSERT INTO users (email, nome, password, role, must_change_password) VALUES (?, ?, ?, ?, ?)
            ''', (email, nome or role.title(), generate_password_hash(password), role, must_change_password))
            db.commit()
            return cur.lastrowid
    return _make_user

@pytest.fixture
def headers_for(app):
    def _headers_for(user_id):
        with app.app_context():
            token = create_access_token(identity=str(user_id))
        return {'Authorization': f'Bearer {token}'}
    return _headers_for

@pytest.fixture
def auth(make_user, headers_for):
    """auth('vendedor') -> (user_id, headers); one user per role."""
    users = {}

    def _auth(role):
        if role not in users:
            users[role] = make_user(role)
        return users[role], headers_for(users[role])
    return _auth

@pytest.fixture
def api_key_headers():
    return {'x-api-key': API_KEY}
