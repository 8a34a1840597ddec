# app/issues/routes.py
from flask import jsonify, g, current_app
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from . import issues_bp
from .. import db
from ..context import get_auth_context
from ..decorators import log_activity
from ..models import User, Project, Issue, IssueComment, IssueStatusEnum
from ..policies import can_view_project, can_contribute_to_project, can_modify_issue
from ..utils.progress import clamp_severity
from ..utils.request import json_object, text_field, id_field

SEVERITY_LABELS = {1: '輕微', 2: '一般', 3: '嚴重'}
STATUS_LABELS = {'open': '未處理', 'doing': '處理中', 'done': '已完成'}


def _name_of(user):
    return user.display_name if user else None


def issue_to_json(issue, ctx=None):
    return {
        "id": issue.id,
        "project_id": issue.project_id,
        "title": issue.title,
        "description": issue.description,
        "severity": issue.severity,
        "severity_label": SEVERITY_LABELS.get(issue.severity, SEVERITY_LABELS[2]),
        "status": issue.status.value,
        "status_label": STATUS_LABELS[issue.status.value],
        "reporter_id": issue.reporter_id,
        "reporter_name": _name_of(issue.reporter),
        "assignee_id": issue.assignee_id,
        "assignee_name": _name_of(issue.assignee),
        "created_at": issue.created_at.isoformat() if issue.created_at else None,
        "updated_at": issue.updated_at.isoformat() if issue.updated_at else None,
        "can_edit": can_modify_issue(ctx, issue) if ctx else False,
    }


def comment_to_json(comment):
    return {
        "id": comment.id,
        "issue_id": comment.issue_id,
        "author_id": comment.author_id,
        "author_name": _name_of(comment.author),
        "content": comment.content,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


def _parse_status(value):
    if not isinstance(value, str):
        return None
    try:
        return IssueStatusEnum(value.strip().lower())
    except ValueError:
        return None


def _load_issue(issue_id):
    """读取异常并检查可见性，返回 (issue, ctx, 错误响应)"""
    ctx = get_auth_context()
    issue = Issue.query.get_or_404(issue_id)
    if not can_view_project(ctx, issue.project):
        return None, ctx, (jsonify({"error": "权限不足"}), 403)
    return issue, ctx, None


def _commit(prefix):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"{prefix}: {e}")
        return jsonify({"error": f"{prefix}：{e}"}), 500
    return None


# --- 异常列表 (Issues) ---

@issues_bp.route('/projects/<int:project_id>/issues', methods=['GET'])
@login_required
def get_project_issues(project_id):
    ctx = get_auth_context()
    project = Project.query.get_or_404(project_id)
    if not can_view_project(ctx, project):
        return jsonify({"error": "权限不足"}), 403

    issues = project.issues.order_by(Issue.created_at.desc(), Issue.id.desc()).all()
    stats = {'open': 0, 'doing': 0, 'done': 0, 'total': len(issues)}
    for issue in issues:
        stats[issue.status.value] += 1

    return jsonify({
        "project": {"id": project.id, "name": project.name},
        "stats": stats,
        "can_create": can_contribute_to_project(ctx, project),
        "issues": [issue_to_json(i, ctx) for i in issues],
    }), 200


@issues_bp.route('/projects/<int:project_id>/issues', methods=['POST'])
@login_required
@log_activity('新增异常', action_detail_template='在项目 {project_id} 新增异常 {title}')
def create_issue(project_id):
    ctx = get_auth_context()
    project = Project.query.get_or_404(project_id)
    if not can_contribute_to_project(ctx, project):
        return jsonify({"error": "你没有在此项目新增异常的权限"}), 403

    data = json_object()
    title = text_field(data, 'title')
    g.log_info = {'title': title}
    if not title:
        return jsonify({"error": "标题不能为空"}), 400
    assignee_id = id_field(data, 'assignee_id')
    if assignee_id is not None and db.session.get(User, assignee_id) is None:
        return jsonify({"error": "指派的使用者不存在"}), 400

    issue = Issue(
        project_id=project.id,
        title=title,
        description=text_field(data, 'description') or None,
        severity=clamp_severity(data.get('severity', 2)),
        status=IssueStatusEnum.OPEN,
        reporter_id=ctx.account_id,
        assignee_id=assignee_id,
    )
    db.session.add(issue)
    error = _commit('新增失败')
    if error:
        return error
    return jsonify({"message": "已新增异常", "issue": issue_to_json(issue, ctx)}), 201


@issues_bp.route('/<int:issue_id>', methods=['GET'])
@login_required
def get_issue(issue_id):
    issue, ctx, denied = _load_issue(issue_id)
    if denied:
        return denied
    payload = issue_to_json(issue, ctx)
    payload["project_name"] = issue.project.name
    payload["comments"] = [comment_to_json(c) for c in issue.comments]
    payload["can_comment"] = can_contribute_to_project(ctx, issue.project)
    return jsonify(payload), 200


@issues_bp.route('/<int:issue_id>', methods=['PUT'])
@login_required
@log_activity('更新异常', action_detail_template='更新异常 {issue_id}')
def update_issue(issue_id):
    issue, ctx, denied = _load_issue(issue_id)
    if denied:
        return denied
    if not can_modify_issue(ctx, issue):
        return jsonify({"error": "只有回报人、负责人或项目 manager 可以修改"}), 403

    data = json_object()
    if 'title' in data:
        title = text_field(data, 'title')
        if not title:
            return jsonify({"error": "标题不能为空"}), 400
        issue.title = title
    if 'description' in data:
        issue.description = text_field(data, 'description') or None
    if 'severity' in data:
        issue.severity = clamp_severity(data.get('severity'))
    if 'status' in data:
        status = _parse_status(data.get('status'))
        if status is None:
            return jsonify({"error": "无效的状态"}), 400
        issue.status = status

    error = _commit('保存失败')
    if error:
        return error
    return jsonify({"message": "已保存", "issue": issue_to_json(issue, ctx)}), 200


@issues_bp.route('/<int:issue_id>/status', methods=['PUT'])
@login_required
@log_activity('变更异常状态', action_detail_template='异常 {issue_id} 状态改为 {status}')
def change_issue_status(issue_id):
    issue, ctx, denied = _load_issue(issue_id)
    if denied:
        return denied
    if not can_contribute_to_project(ctx, issue.project):
        return jsonify({"error": "viewer 只能查看"}), 403

    status = _parse_status(json_object().get('status'))
    if status is None:
        return jsonify({"error": "无效的状态"}), 400
    g.log_info = {'status': status.value}
    issue.status = status

    error = _commit('更新失败')
    if error:
        return error
    return jsonify({"message": "已更新状态", "issue": issue_to_json(issue, ctx)}), 200


@issues_bp.route('/<int:issue_id>/assign-to-me', methods=['POST'])
@login_required
@log_activity('认领异常', action_detail_template='认领异常 {issue_id}')
def assign_to_me(issue_id):
    issue, ctx, denied = _load_issue(issue_id)
    if denied:
        return denied
    if not can_contribute_to_project(ctx, issue.project):
        return jsonify({"error": "viewer 只能查看"}), 403

    issue.assignee_id = ctx.account_id
    error = _commit('更新失败')
    if error:
        return error
    return jsonify({"message": "已指派给你", "issue": issue_to_json(issue, ctx)}), 200


@issues_bp.route('/<int:issue_id>', methods=['DELETE'])
@login_required
@log_activity('删除异常', action_detail_template='删除异常 {issue_id}')
def delete_issue(issue_id):
    issue, ctx, denied = _load_issue(issue_id)
    if denied:
        return denied
    if not can_modify_issue(ctx, issue):
        return jsonify({"error": "只有回报人、负责人或项目 manager 可以删除"}), 403

    # 留言随异常一起删除（同一事务）
    db.session.delete(issue)
    error = _commit('删除失败')
    if error:
        return error
    return jsonify({"message": "已删除异常"}), 200


# --- 留言 (Comments) ---

@issues_bp.route('/<int:issue_id>/comments', methods=['GET'])
@login_required
def get_comments(issue_id):
    issue, ctx, denied = _load_issue(issue_id)
    if denied:
        return denied
    comments = IssueComment.query.filter_by(issue_id=issue.id).order_by(
        IssueComment.created_at.asc(), IssueComment.id.asc()
    ).all()
    return jsonify([comment_to_json(c) for c in comments]), 200


@issues_bp.route('/<int:issue_id>/comments', methods=['POST'])
@login_required
@log_activity('新增留言', action_detail_template='在异常 {issue_id} 新增留言')
def add_comment(issue_id):
    issue, ctx, denied = _load_issue(issue_id)
    if denied:
        return denied
    if not can_contribute_to_project(ctx, issue.project):
        return jsonify({"error": "viewer 只能查看"}), 403

    content = text_field(json_object(), 'content')
    if not content:
        return jsonify({"error": "留言内容不能为空"}), 400

    comment = IssueComment(issue_id=issue.id, author_id=ctx.account_id, content=content)
    db.session.add(comment)
    error = _commit('新增失败')
    if error:
        return error
    return jsonify({"message": "已新增留言", "comment": comment_to_json(comment)}), 201
