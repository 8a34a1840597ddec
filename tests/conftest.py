"""
Pytest configuration and shared fixtures.
"""

import pytest
from flask import g, request_started

from app import create_app, db
from app.models import User, Profile, Engineer

PASSWORD = "secret123"


def _reset_request_globals(sender, **extra):
    # app context 在整个测试中保持推入，各个 client 的请求共用同一个 g
    for key in list(g):
        g.pop(key)


@pytest.fixture
def app(tmp_path):
    """Application with an in-memory database and a per-test storage folder."""
    app = create_app('testing')
    app.config['STORAGE_FOLDER'] = str(tmp_path / 'storage')
    request_started.connect(_reset_request_globals, app)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def create_account(email, name=None, is_admin=False, password=PASSWORD):
    user = User(email=email)
    user.set_password(password)
    user.profile = Profile(name=name, is_admin=is_admin)
    db.session.add(user)
    db.session.commit()
    return user.id


@pytest.fixture
def accounts(app):
    """One admin and two regular accounts."""
    return {
        'admin': create_account('boss@example.com', name='主管', is_admin=True),
        'alice': create_account('alice@example.com', name='Alice'),
        'bob': create_account('bob@example.com', name='Bob'),
    }


@pytest.fixture
def login(app, accounts):
    """Return a factory that logs an account in on its own test client."""
    def _login(email, password=PASSWORD):
        test_client = app.test_client()
        resp = test_client.post('/auth/login', json={'email': email, 'password': password})
        assert resp.status_code == 200, resp.get_json()
        return test_client
    return _login


@pytest.fixture
def admin_client(login):
    return login('boss@example.com')


@pytest.fixture
def alice_client(login):
    return login('alice@example.com')


@pytest.fixture
def bob_client(login):
    return login('bob@example.com')


@pytest.fixture
def engineer(app, accounts):
    """Engineer row linked to alice."""
    row = Engineer(user_id=accounts['alice'], name='Alice', is_active=True)
    db.session.add(row)
    db.session.commit()
    return row.id


@pytest.fixture
def project(admin_client, accounts):
    """A project owned by the admin, with alice as a member."""
    resp = admin_client.post('/project/projects', json={'name': 'Line A rollout'})
    assert resp.status_code == 201
    project_id = resp.get_json()['project']['id']
    resp = admin_client.post('/admin/members', json={
        'project_id': project_id, 'email': 'alice@example.com', 'role_in_project': 'member',
    })
    assert resp.status_code == 200
    return project_id
