# app/policies.py
"""
服务器端的访问控制。

前端拿到的 can_edit 之类的标记只是界面提示，真正的判断都在这里，
每个视图在读写之前都要调用。
"""
from sqlalchemy import or_

from . import db
from .models import Project, ProjectMember, MemberRoleEnum


def _membership(ctx, project_id):
    return db.session.get(ProjectMember, (project_id, ctx.account_id))


def visible_projects_query(ctx):
    """管理员看全部；其他人只看自己负责或被加入的项目"""
    query = Project.query
    if ctx.is_admin:
        return query
    member_project_ids = db.session.query(ProjectMember.project_id).filter(
        ProjectMember.user_id == ctx.account_id
    )
    return query.filter(or_(Project.owner_id == ctx.account_id, Project.id.in_(member_project_ids)))


def can_view_project(ctx, project):
    if ctx.is_admin or project.owner_id == ctx.account_id:
        return True
    return _membership(ctx, project.id) is not None


def can_manage_project(ctx, project):
    """修改项目本身（名称、进度）：管理员、负责人或项目 manager"""
    if ctx.is_admin or project.owner_id == ctx.account_id:
        return True
    member = _membership(ctx, project.id)
    return member is not None and member.role_in_project == MemberRoleEnum.MANAGER


def can_delete_project(ctx, project):
    return ctx.is_admin or project.owner_id == ctx.account_id


def can_contribute_to_project(ctx, project):
    """新增异常、留言、上传验证文件：viewer 只能看"""
    if ctx.is_admin or project.owner_id == ctx.account_id:
        return True
    member = _membership(ctx, project.id)
    return member is not None and member.role_in_project in (MemberRoleEnum.MANAGER, MemberRoleEnum.MEMBER)


def can_modify_issue(ctx, issue):
    if can_manage_project(ctx, issue.project):
        return True
    if not can_contribute_to_project(ctx, issue.project):
        return False
    return ctx.account_id in (issue.reporter_id, issue.assignee_id)


def can_delete_validation(ctx, validation):
    if can_manage_project(ctx, validation.project):
        return True
    return validation.uploaded_by == ctx.account_id and can_contribute_to_project(ctx, validation.project)


def can_edit_schedule_for(ctx, engineer_id):
    """一般用户只能编辑自己的行程"""
    if ctx.is_admin:
        return True
    return ctx.engineer_id is not None and engineer_id == ctx.engineer_id
