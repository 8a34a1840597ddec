"""
Integration tests for the auth blueprint.
"""

from flask_login import login_user

from app import db
from app.context import get_auth_context
from app.models import User, Engineer


class TestRegister:

    def test_register_requires_name(self, client):
        resp = client.post('/auth/register', json={'email': 'new@example.com', 'password': 'pw123456'})
        assert resp.status_code == 400
        assert '姓名' in resp.get_json()['error']

    def test_register_and_login(self, client):
        resp = client.post('/auth/register', json={
            'email': 'New@Example.com', 'password': 'pw123456', 'name': '新同事',
        })
        assert resp.status_code == 201
        assert resp.get_json()['user']['email'] == 'new@example.com'

        resp = client.post('/auth/login', json={'email': 'new@example.com', 'password': 'pw123456'})
        assert resp.status_code == 200
        user = resp.get_json()['user']
        assert user['display_name'] == '新同事'
        assert user['is_admin'] is False

    def test_duplicate_email(self, client, accounts):
        resp = client.post('/auth/register', json={
            'email': 'alice@example.com', 'password': 'pw123456', 'name': 'Again',
        })
        assert resp.status_code == 409

    def test_registration_disabled(self, app, client):
        app.config['ALLOW_REGISTRATION'] = False
        resp = client.post('/auth/register', json={
            'email': 'x@example.com', 'password': 'pw123456', 'name': 'X',
        })
        assert resp.status_code == 403


class TestSession:

    def test_wrong_password(self, client, accounts):
        resp = client.post('/auth/login', json={'email': 'alice@example.com', 'password': 'nope'})
        assert resp.status_code == 401

    def test_status_anonymous(self, client):
        assert client.get('/auth/status').get_json() == {'logged_in': False}

    def test_protected_endpoint_requires_login(self, client):
        resp = client.get('/project/projects')
        assert resp.status_code == 401
        body = resp.get_json()
        assert body['code'] == 'AUTH_REQUIRED'
        assert body['login_url'] == '/auth/login'

    def test_status_reports_engineer(self, alice_client, engineer):
        data = alice_client.get('/auth/status').get_json()
        assert data['logged_in'] is True
        assert data['data']['user']['engineer_id'] == engineer
        assert data['data']['user']['is_admin'] is False

    def test_logout(self, alice_client):
        assert alice_client.post('/auth/logout').status_code == 200
        assert alice_client.get('/auth/status').get_json() == {'logged_in': False}


class TestEnsureEngineer:

    def test_regular_user_gets_engineer_row(self, app, alice_client, accounts):
        assert Engineer.query.filter_by(user_id=accounts['alice']).first() is None
        resp = alice_client.get('/schedule/engineers')
        assert resp.status_code == 200
        rows = resp.get_json()
        assert len(rows) == 1
        assert rows[0]['name'] == 'Alice'
        assert Engineer.query.filter_by(user_id=accounts['alice']).count() == 1

    def test_admin_gets_no_engineer_row(self, app, admin_client, accounts):
        admin_client.get('/schedule/engineers')
        assert Engineer.query.filter_by(user_id=accounts['admin']).first() is None


class TestRequestIdentity:

    def test_clients_keep_their_own_account(self, admin_client, alice_client, bob_client):
        for test_client, email in [(admin_client, 'boss@example.com'), (alice_client, 'alice@example.com'),
                                   (bob_client, 'bob@example.com'), (admin_client, 'boss@example.com')]:
            user = test_client.get('/auth/status').get_json()['data']['user']
            assert user['email'] == email

    def test_non_member_never_inherits_admin_view(self, project, admin_client, bob_client):
        assert admin_client.get('/project/projects').get_json()['projects'][0]['can_edit'] is True
        assert bob_client.get('/project/projects').get_json()['projects'] == []
        assert bob_client.get(f'/project/projects/{project}').status_code == 403

    def test_cached_context_follows_current_user(self, app, accounts):
        with app.test_request_context():
            login_user(db.session.get(User, accounts['alice']))
            assert get_auth_context().account_id == accounts['alice']
            login_user(db.session.get(User, accounts['bob']))
            assert get_auth_context().account_id == accounts['bob']
