# app/project/routes.py

from flask import jsonify, g, current_app
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from . import project_bp
from .. import db
from ..context import get_auth_context
from ..decorators import log_activity
from ..models import Project, ScheduleItem, ItemTypeEnum
from ..policies import visible_projects_query, can_view_project, can_manage_project, can_delete_project
from ..storage import get_storage, StorageError
from ..utils.progress import (
    STAGES, META_KEY, normalize_progress, build_progress_payload, overall_percent,
    aggregate_usage, empty_stage_days, is_stage_overdue, is_project_overdue, status_label,
)
from ..utils.request import json_object, text_field, dict_field

VALIDATION_BUCKET = 'validations'


# --- 辅助函数 (Helper Functions) ---

def load_usage(project_ids):
    """读取这些项目的工作类行程，统计使用天数"""
    if not project_ids:
        return {}
    rows = ScheduleItem.query.filter(
        ScheduleItem.project_id.in_(project_ids),
        ScheduleItem.item_type == ItemTypeEnum.WORK,
    ).all()
    return aggregate_usage(rows, project_ids)


def stages_to_json(progress, stage_days):
    stages = []
    for stage in STAGES:
        value = progress[stage['key']]
        used = stage_days.get(stage['key'], 0)
        stages.append({
            'key': stage['key'],
            'label': stage['label'],
            'status': value['status'],
            'status_label': status_label(value['status']),
            'percent': value['percent'],
            'note': value['note'],
            'plan_days': value['plan_days'],
            'used_days': used,
            'overdue': is_stage_overdue(value['plan_days'], used, value['status']),
        })
    return stages


def project_to_json(project, usage=None, ctx=None):
    """将Project对象转换为JSON格式，附带阶段进度、使用天数与逾期标记"""
    progress = normalize_progress(project.progress)
    usage = usage or {'total_days': 0, 'stage_days': empty_stage_days()}
    overall = overall_percent(progress)
    plan_days = progress[META_KEY]['project_plan_days']
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "owner_id": project.owner_id,
        "created_at": project.created_at.isoformat() if project.created_at else None,
        "stages": stages_to_json(progress, usage['stage_days']),
        "project_plan_days": plan_days,
        "used_days": usage['total_days'],
        "overall": overall,
        "overdue": is_project_overdue(plan_days, usage['total_days'], overall),
        # 只是界面提示，真正的权限检查在服务器端
        "can_edit": can_manage_project(ctx, project) if ctx else False,
    }


def _progress_from_request(data, base=None):
    progress = dict_field(data, 'progress')
    plan_days = data.get('project_plan_days')
    if plan_days is None and isinstance(progress.get(META_KEY), dict):
        plan_days = progress[META_KEY].get('project_plan_days')
    return build_progress_payload(progress, plan_days, base=base)


# --- 项目路由 (Project Routes) ---

@project_bp.route('/projects', methods=['GET'])
@login_required
def get_all_projects():
    ctx = get_auth_context()
    try:
        projects = visible_projects_query(ctx).order_by(Project.created_at.desc(), Project.id.desc()).all()
        usage = load_usage([p.id for p in projects])
    except SQLAlchemyError as e:
        current_app.logger.error(f"读取项目失败: {e}")
        return jsonify({"error": f"读取项目失败：{e}"}), 500

    payload = {"projects": [project_to_json(p, usage.get(p.id), ctx) for p in projects]}
    if not projects:
        payload["message"] = "目前没有可见的项目（不是负责人或成员，或尚未建立项目）"
    return jsonify(payload), 200


@project_bp.route('/projects/<int:project_id>', methods=['GET'])
@login_required
def get_project(project_id):
    ctx = get_auth_context()
    project = Project.query.get_or_404(project_id)
    if not can_view_project(ctx, project):
        return jsonify({"error": "权限不足"}), 403
    usage = load_usage([project.id])
    return jsonify(project_to_json(project, usage.get(project.id), ctx)), 200


@project_bp.route('/projects', methods=['POST'])
@login_required
@log_activity('创建项目', action_detail_template='创建项目 {name}')
def create_project():
    ctx = get_auth_context()
    data = json_object()
    name = text_field(data, 'name')
    g.log_info = {'name': name}
    if not name:
        return jsonify({"error": "项目名称不能为空"}), 400

    try:
        new_project = Project(
            name=name,
            description=text_field(data, 'description') or None,
            owner_id=ctx.account_id,
            progress=_progress_from_request(data),
        )
        db.session.add(new_project)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"新增项目失败: {e}")
        return jsonify({"error": f"新增失败：{e}"}), 500

    return jsonify({"message": "已新增项目", "project": project_to_json(new_project, ctx=ctx)}), 201


@project_bp.route('/projects/<int:project_id>', methods=['PUT'])
@login_required
@log_activity('更新项目信息', action_detail_template='更新项目 {project_id}')
def update_project(project_id):
    ctx = get_auth_context()
    project = Project.query.get_or_404(project_id)
    if not can_manage_project(ctx, project):
        return jsonify({"error": "只有负责人、项目 manager 或主管可以修改项目"}), 403

    data = json_object()
    if 'name' in data:
        name = text_field(data, 'name')
        if not name:
            return jsonify({"error": "项目名称不能为空"}), 400
        project.name = name
    if 'description' in data:
        project.description = text_field(data, 'description') or None
    if 'progress' in data or 'project_plan_days' in data:
        # JSON 列需要整体替换才会被识别为变更
        project.progress = _progress_from_request(data, base=project.progress)

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"保存项目失败: {e}")
        return jsonify({"error": f"保存失败：{e}"}), 500

    usage = load_usage([project.id])
    return jsonify({"message": "已保存", "project": project_to_json(project, usage.get(project.id), ctx)}), 200


@project_bp.route('/projects/<int:project_id>', methods=['DELETE'])
@login_required
@log_activity('删除项目', action_detail_template='删除项目 {project_id}')
def delete_project(project_id):
    """
    在同一个事务里：行程解除关联、删除异常（含留言）、验证文件记录与成员，最后删除项目。
    提交成功后再删除存储中的文件，删除失败只记录日志。
    """
    ctx = get_auth_context()
    project = Project.query.get_or_404(project_id)
    if not can_delete_project(ctx, project):
        return jsonify({"error": "只有负责人或主管可以删除项目"}), 403

    file_paths = [v.file_path for v in project.validations]
    try:
        ScheduleItem.query.filter_by(project_id=project.id).update(
            {ScheduleItem.project_id: None}, synchronize_session=False
        )
        # 异常（含留言）、验证文件记录与成员随项目级联删除
        db.session.delete(project)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"删除项目 {project_id} 失败: {e}")
        return jsonify({"error": f"删除失败：{e}"}), 500

    if file_paths:
        try:
            get_storage().remove(VALIDATION_BUCKET, file_paths)
        except StorageError as e:
            current_app.logger.warning(f"项目 {project_id} 已删除，但清理验证文件失败: {e.message}")

    return jsonify({"message": "已删除项目"}), 200
