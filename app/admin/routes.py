# app/admin/routes.py
from flask import jsonify, g, current_app
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from . import admin_bp
from .. import db
from ..context import get_auth_context
from ..decorators import admin_required, log_activity
from ..models import User, Profile, Project, ProjectMember, MemberRoleEnum
from ..utils.request import json_object, text_field, id_field


def member_to_json(member):
    user = member.user
    return {
        'project_id': member.project_id,
        'user_id': member.user_id,
        'role_in_project': member.role_in_project.value,
        'name': user.profile.name if user and user.profile else None,
        'email': user.email if user else None,
        'created_at': member.created_at.isoformat() if member.created_at else None,
    }


def _parse_role(value):
    if not isinstance(value, str):
        return None
    try:
        return MemberRoleEnum(value)
    except ValueError:
        return None


# ------------------- 项目成员管理 API -------------------

@admin_bp.route('/members', methods=['GET'])
@login_required
@admin_required
def get_members():
    """
    所有项目成员，按项目分组，带姓名和 email。
    """
    members = ProjectMember.query.order_by(ProjectMember.created_at.desc()).all()
    projects = Project.query.order_by(Project.created_at.desc()).all()

    by_project = {}
    for m in members:
        by_project.setdefault(m.project_id, []).append(member_to_json(m))

    ctx = get_auth_context()
    return jsonify({
        'me': {'email': ctx.email, 'is_admin': ctx.is_admin},
        'projects': [{
            'id': p.id,
            'name': p.name,
            'members': by_project.get(p.id, []),
        } for p in projects],
    })


@admin_bp.route('/members', methods=['POST'])
@login_required
@admin_required
@log_activity('新增项目成员', action_detail_template='将 {email} 加入项目 {project_id}')
def upsert_member():
    """
    按 email 新增或更新项目成员（project_id + user_id 冲突时更新角色）。
    """
    data = json_object()
    project_id = id_field(data, 'project_id')
    email = text_field(data, 'email')
    role = _parse_role(data.get('role_in_project', 'member'))
    g.log_info = {'email': email, 'project_id': project_id}

    if not project_id:
        return jsonify({"error": "请选择项目"}), 400
    if not email:
        return jsonify({"error": "请输入使用者 email"}), 400
    if role is None:
        return jsonify({"error": "无效的项目角色"}), 400

    project = db.session.get(Project, project_id)
    if project is None:
        return jsonify({"error": "项目不存在"}), 404
    user = User.query.filter(func.lower(User.email) == email.lower()).first()
    if user is None:
        return jsonify({"error": "找不到此 email 的使用者（对方必须先注册）"}), 404

    try:
        member = db.session.get(ProjectMember, (project.id, user.id))
        if member is None:
            member = ProjectMember(project_id=project.id, user_id=user.id, role_in_project=role)
            db.session.add(member)
        else:
            member.role_in_project = role
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"新增成员失败: {e}")
        return jsonify({"error": f"新增成员失败：{e}"}), 500

    return jsonify({"message": "已新增/更新成员", "member": member_to_json(member)}), 200


@admin_bp.route('/members/<int:project_id>/<int:user_id>', methods=['PUT'])
@login_required
@admin_required
@log_activity('更新成员角色', action_detail_template='更新项目 {project_id} 成员 {user_id} 的角色')
def change_member_role(project_id, user_id):
    member = db.session.get(ProjectMember, (project_id, user_id))
    if member is None:
        return jsonify({"error": "成员不存在"}), 404
    role = _parse_role(json_object().get('role_in_project'))
    if role is None:
        return jsonify({"error": "无效的项目角色"}), 400

    try:
        member.role_in_project = role
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"更新角色失败: {e}")
        return jsonify({"error": f"更新角色失败：{e}"}), 500
    return jsonify({"message": "已更新角色", "member": member_to_json(member)}), 200


@admin_bp.route('/members/<int:project_id>/<int:user_id>', methods=['DELETE'])
@login_required
@admin_required
@log_activity('移除成员', action_detail_template='从项目 {project_id} 移除成员 {user_id}')
def remove_member(project_id, user_id):
    member = db.session.get(ProjectMember, (project_id, user_id))
    if member is None:
        return jsonify({"error": "成员不存在"}), 404
    try:
        db.session.delete(member)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"移除失败: {e}")
        return jsonify({"error": f"移除失败：{e}"}), 500
    return jsonify({"message": "已移除成员"}), 200


# ------------------- 主管设定 API -------------------

@admin_bp.route('/profiles/<int:user_id>/admin', methods=['PUT'])
@login_required
@admin_required
@log_activity('设定主管', action_detail_template='设定账号 {user_id} 的主管权限')
def set_admin_flag(user_id):
    user = User.query.get_or_404(user_id)
    is_admin = json_object().get('is_admin')
    if not isinstance(is_admin, bool):
        return jsonify({"error": "无效的数据格式，'is_admin' 必须是布尔值"}), 400
    if user_id == get_auth_context().account_id and not is_admin:
        return jsonify({"error": "不能取消自己的主管权限"}), 400

    try:
        if user.profile is None:
            user.profile = Profile(name=None, is_admin=is_admin)
        else:
            user.profile.is_admin = is_admin
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"更新主管权限失败: {e}")
        return jsonify({"error": f"更新失败：{e}"}), 500
    return jsonify({"message": "已更新", "user_id": user.id, "is_admin": is_admin}), 200
