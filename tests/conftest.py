import os

# In-memory DB before the app module is imported anywhere
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['JWT_ACCESS_SECRET'] = 'test-secret-that-is-at-least-32-bytes-long'

import pytest

from app import app as flask_app
from models import (
    db, User, Question, Option, TestSettings, Attempt, AttemptItem,
    ROLE_CANDIDATE, STATUS_SUBMITTED,
)
from pdf_renderer import PdfRenderer

PASSWORD = 'Passw0rd1'


class StubRenderer(PdfRenderer):
    """Records the HTML it was given and returns a fixed PDF byte string."""

    def __init__(self):
        self.calls = []

    def render(self, html):
        self.calls.append(html)
        return b'%PDF-1.4\n% stub certificate\n'


class Seeder:
    def __init__(self, app):
        self.app = app

    def user(self, email, role=ROLE_CANDIDATE, full_name='jane VAN doe', password=PASSWORD):
        with self.app.app_context():
            u = User(email=email, role=role, full_name=full_name)
            u.set_password(password)
            db.session.add(u)
            db.session.commit()
            return u.id

    def questions(self, tag, count, allow_multiple=False):
        ids = []
        with self.app.app_context():
            for i in range(count):
                q = Question(tag=tag, prompt=f'{tag} question {i}', allow_multiple=allow_multiple)
                q.options.append(Option(display_order=0, text='right', is_correct=True))
                q.options.append(Option(display_order=1, text='wrong', is_correct=False))
                q.options.append(Option(display_order=2, text='also right' if allow_multiple else 'nope', is_correct=allow_multiple))
                db.session.add(q)
                db.session.flush()
                ids.append(q.id)
            db.session.commit()
        return ids

    def quotas(self, **criteria):
        with self.app.app_context():
            settings = TestSettings.get_or_create()
            settings.criteria = criteria
            db.session.commit()

    def submitted_attempt(self, user_id, level='B2', region=None):
        with self.app.app_context():
            q = Question(tag='A1', prompt='Pick one', allow_multiple=False)
            q.options.append(Option(display_order=0, text='yes', is_correct=True))
            q.options.append(Option(display_order=1, text='no', is_correct=False))
            db.session.add(q)
            db.session.flush()
            attempt = Attempt(user_id=user_id, status=STATUS_SUBMITTED, level=level, score=100.0, region=region)
            attempt.items.append(AttemptItem(
                position=0,
                question_id=q.id,
                tag='A1',
                allow_multiple=False,
                option_ids=[o.id for o in q.options],
                correct_option_ids=[q.options[0].id],
            ))
            db.session.add(attempt)
            db.session.commit()
            return attempt.id

    def login(self, client, email, password=PASSWORD):
        resp = client.post('/api/auth/login', json={'email': email, 'password': password})
        assert resp.status_code == 200, resp.get_json()
        return resp


@pytest.fixture()
def app(tmp_path):
    flask_app.config['TESTING'] = True
    flask_app.config['JWT_ACCESS_SECRET'] = os.environ['JWT_ACCESS_SECRET']
    flask_app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    flask_app.config['MAX_UPLOAD_BYTES'] = 5 * 1024 * 1024
    flask_app.config['MAX_CONTENT_LENGTH'] = 11 * 1024 * 1024
    flask_app.config['PDF_RENDERER'] = StubRenderer()
    flask_app.config['ATTEMPT_RNG'] = None
    flask_app.config['PUBLIC_BASE_URL'] = 'https://certs.example.test'
    flask_app.config['CERT_LOGO_FILE'] = None
    flask_app.config['CERT_LOGO_URL'] = None
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()


@pytest.fixture()
def app_client(app):
    return app.test_client()


@pytest.fixture()
def seed(app):
    return Seeder(app)
