"""
Integration tests for the admin (project membership) blueprint.
"""


class TestMembers:

    def test_regular_user_forbidden(self, alice_client):
        resp = alice_client.get('/admin/members')
        assert resp.status_code == 403
        assert 'is_admin=false' in resp.get_json()['error']

    def test_list_grouped_by_project(self, project, admin_client):
        data = admin_client.get('/admin/members').get_json()
        assert data['me']['is_admin'] is True
        group = next(p for p in data['projects'] if p['id'] == project)
        assert [(m['email'], m['name'], m['role_in_project']) for m in group['members']] == [
            ('alice@example.com', 'Alice', 'member'),
        ]

    def test_upsert_updates_existing_member(self, project, admin_client):
        resp = admin_client.post('/admin/members', json={
            'project_id': project, 'email': 'ALICE@example.com', 'role_in_project': 'manager',
        })
        assert resp.status_code == 200
        data = admin_client.get('/admin/members').get_json()
        group = next(p for p in data['projects'] if p['id'] == project)
        assert len(group['members']) == 1
        assert group['members'][0]['role_in_project'] == 'manager'

    def test_unknown_email(self, project, admin_client):
        resp = admin_client.post('/admin/members', json={'project_id': project, 'email': 'who@example.com'})
        assert resp.status_code == 404

    def test_invalid_role(self, project, admin_client, accounts):
        resp = admin_client.put(f"/admin/members/{project}/{accounts['alice']}", json={'role_in_project': 'owner'})
        assert resp.status_code == 400

    def test_remove_member(self, project, admin_client, alice_client, accounts):
        resp = admin_client.delete(f"/admin/members/{project}/{accounts['alice']}")
        assert resp.status_code == 200
        assert alice_client.get(f'/project/projects/{project}').status_code == 403
        assert admin_client.delete(f"/admin/members/{project}/{accounts['alice']}").status_code == 404


class TestAdminFlag:

    def test_promote_user(self, admin_client, alice_client, accounts):
        resp = admin_client.put(f"/admin/profiles/{accounts['alice']}/admin", json={'is_admin': True})
        assert resp.status_code == 200
        assert alice_client.get('/admin/members').status_code == 200

    def test_cannot_demote_self(self, admin_client, accounts):
        resp = admin_client.put(f"/admin/profiles/{accounts['admin']}/admin", json={'is_admin': False})
        assert resp.status_code == 400


class TestDashboard:

    def test_dashboard_summary(self, project, admin_client, alice_client):
        admin_client.put(f'/project/projects/{project}', json={'progress': {'training': {'percent': 60}}})
        data = alice_client.get('/dashboard/').get_json()
        assert data['display_name'] == 'Alice'
        summary = next(p for p in data['projects'] if p['id'] == project)
        assert summary['overall'] == 10
        assert [s['percent'] for s in summary['stages']] == [0, 0, 0, 0, 0, 60]
        assert set(data['week_panels']) == {'this_week', 'next_week'}

    def test_dashboard_hides_foreign_projects(self, project, bob_client):
        assert bob_client.get('/dashboard/').get_json()['projects'] == []
