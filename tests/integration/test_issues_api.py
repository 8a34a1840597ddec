"""
Integration tests for the issues blueprint.
"""

from app.models import IssueComment


def open_issue(client, project_id, **payload):
    payload.setdefault('title', 'Feeder jam')
    resp = client.post(f'/issues/projects/{project_id}/issues', json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['issue']


class TestIssues:

    def test_create_defaults(self, project, alice_client, accounts):
        issue = open_issue(alice_client, project, severity=7)
        assert issue['status'] == 'open'
        assert issue['severity'] == 3
        assert issue['reporter_id'] == accounts['alice']
        assert issue['reporter_name'] == 'Alice'

    def test_title_required(self, project, alice_client):
        resp = alice_client.post(f'/issues/projects/{project}/issues', json={'title': ''})
        assert resp.status_code == 400

    def test_malformed_input_rejected(self, project, alice_client):
        url = f'/issues/projects/{project}/issues'
        assert alice_client.post(url, json={'title': {'text': 'jam'}}).status_code == 400
        assert alice_client.post(url, json={'title': 'jam', 'assignee_id': 'me'}).status_code == 400
        assert alice_client.post(url, json=['jam']).status_code == 400

        issue = open_issue(alice_client, project)
        assert alice_client.put(f"/issues/{issue['id']}/status", json={'status': 2}).status_code == 400
        assert alice_client.put(f"/issues/{issue['id']}", json={'status': ['done']}).status_code == 400

    def test_list_with_stats(self, project, alice_client):
        first = open_issue(alice_client, project, title='one')
        open_issue(alice_client, project, title='two')
        alice_client.put(f"/issues/{first['id']}/status", json={'status': 'done'})

        data = alice_client.get(f'/issues/projects/{project}/issues').get_json()
        assert data['stats'] == {'open': 1, 'doing': 0, 'done': 1, 'total': 2}
        assert [i['title'] for i in data['issues']] == ['two', 'one']

    def test_viewer_is_read_only(self, project, admin_client, alice_client, accounts):
        admin_client.put(f"/admin/members/{project}/{accounts['alice']}", json={'role_in_project': 'viewer'})
        resp = alice_client.post(f'/issues/projects/{project}/issues', json={'title': 'x'})
        assert resp.status_code == 403
        assert alice_client.get(f'/issues/projects/{project}/issues').status_code == 200

    def test_non_member_cannot_see(self, project, bob_client):
        assert bob_client.get(f'/issues/projects/{project}/issues').status_code == 403

    def test_assign_to_me(self, project, admin_client, alice_client, accounts):
        issue = open_issue(admin_client, project)
        resp = alice_client.post(f"/issues/{issue['id']}/assign-to-me")
        assert resp.status_code == 200
        assert resp.get_json()['issue']['assignee_id'] == accounts['alice']
        assert resp.get_json()['issue']['can_edit'] is True

    def test_edit_rules(self, project, admin_client, alice_client):
        issue = open_issue(admin_client, project)
        resp = alice_client.put(f"/issues/{issue['id']}", json={'title': 'mine now'})
        assert resp.status_code == 403

        resp = admin_client.put(f"/issues/{issue['id']}", json={'severity': 1, 'status': 'doing'})
        body = resp.get_json()['issue']
        assert body['severity'] == 1
        assert body['status'] == 'doing'

        assert admin_client.put(f"/issues/{issue['id']}/status", json={'status': 'closed'}).status_code == 400


class TestComments:

    def test_comments_in_creation_order(self, project, alice_client, admin_client):
        issue = open_issue(alice_client, project)
        for text in ['first', 'second', 'third']:
            resp = admin_client.post(f"/issues/{issue['id']}/comments", json={'content': text})
            assert resp.status_code == 201

        comments = alice_client.get(f"/issues/{issue['id']}/comments").get_json()
        assert [c['content'] for c in comments] == ['first', 'second', 'third']
        assert comments[0]['author_name'] == '主管'

        detail = alice_client.get(f"/issues/{issue['id']}").get_json()
        assert detail['project_name'] == 'Line A rollout'
        assert len(detail['comments']) == 3

    def test_empty_comment_rejected(self, project, alice_client):
        issue = open_issue(alice_client, project)
        assert alice_client.post(f"/issues/{issue['id']}/comments", json={'content': '  '}).status_code == 400

    def test_delete_removes_comments(self, app, project, alice_client):
        issue = open_issue(alice_client, project)
        alice_client.post(f"/issues/{issue['id']}/comments", json={'content': 'note'})
        assert alice_client.delete(f"/issues/{issue['id']}").status_code == 200
        assert IssueComment.query.count() == 0
        assert alice_client.get(f"/issues/{issue['id']}").status_code == 404
