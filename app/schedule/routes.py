# app/schedule/routes.py
from datetime import date

from flask import request, jsonify, g, current_app
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from . import schedule_bp
from .. import db
from ..context import get_auth_context, ensure_engineer_for
from ..decorators import admin_required, log_activity
from ..models import User, Engineer, Project, ScheduleItem, ItemTypeEnum
from ..policies import can_edit_schedule_for, can_view_project, visible_projects_query
from ..utils.progress import (
    STAGE_KEYS, STAGE_LABELS, clamp_priority, stage_number, is_stage_number, stage_key_for_number,
    detect_stage_from_text,
)
from ..utils.schedule import (
    to_iso_date, parse_iso_date, start_of_week_mon, add_days, build_grid,
    next_sort_order, build_week_blocks, type_label, item_line,
)
from ..utils.request import json_object, text_field


# --- 辅助函数 (Helper Functions) ---

def engineer_to_json(engineer):
    return {
        "id": engineer.id,
        "name": engineer.name,
        "phone": engineer.phone,
        "is_active": engineer.is_active,
        "user_id": engineer.user_id,
        "email": engineer.user.email if engineer.user else None,
    }


def item_to_json(item):
    return {
        "id": item.id,
        "engineer_id": item.engineer_id,
        "work_date": to_iso_date(item.work_date),
        "project_id": item.project_id,
        "title": item.title,
        "details": item.details,
        "item_type": item.item_type.value,
        "type_label": type_label(item.item_type),
        "priority": item.priority,
        "stage_key": item.stage_key,
        "stage": stage_number(item.stage_key),
        "stage_label": STAGE_LABELS.get(item.stage_key),
        "sort_order": item.sort_order,
        "updated_at": item.updated_at.isoformat() if item.updated_at else None,
    }


def _parse_item_type(value):
    if value is None:
        value = 'work'
    if not isinstance(value, str):
        return None
    try:
        return ItemTypeEnum((value.strip() or 'work').lower())
    except ValueError:
        return None


def _resolve_stage_key(data, title, details):
    """
    行程所属阶段在建立时确定：
    明确的 stage_key > 数字 stage (1..6，超出范围会钳制) > 标题与说明的关键字推测。
    返回 (stage_key, 错误信息)。
    """
    stage_key = data.get('stage_key')
    if stage_key not in (None, ''):
        if stage_key not in STAGE_KEYS:
            return None, "无效的阶段"
        return stage_key, None
    stage = data.get('stage')
    if stage not in (None, ''):
        if not is_stage_number(stage):
            return None, "无效的阶段编号"
        return stage_key_for_number(stage), None
    return detect_stage_from_text(f"{title}\n{details or ''}"), None


def _load_project_names(ctx, project_ids):
    """只返回当前账号看得到的项目名称"""
    ids = {pid for pid in project_ids if pid is not None}
    if not ids:
        return {}
    return {p.id: p.name for p in visible_projects_query(ctx).filter(Project.id.in_(ids)).all()}


def build_week_panels(ctx, limit, today=None):
    """
    本周与下周（周一开始）的行程，供只读面板显示，每个面板最多 limit 笔。
    行程显示全体工程师；看不到的项目一律显示为（未知專案）。
    """
    week_start = start_of_week_mon(today or date.today())
    ranges = [('this_week', week_start), ('next_week', add_days(week_start, 7))]

    engineers = {e.id: e.name for e in Engineer.query.filter_by(is_active=True).all()}
    panels = {}
    for name, start in ranges:
        items = ScheduleItem.query.filter(
            ScheduleItem.work_date >= start,
            ScheduleItem.work_date < add_days(start, 7),
        ).order_by(ScheduleItem.work_date, ScheduleItem.engineer_id, ScheduleItem.sort_order).all()
        project_names = _load_project_names(ctx, (it.project_id for it in items))

        lines = []
        for it in items[:limit]:
            engineer_name = engineers.get(it.engineer_id, '（未知工程師）')
            if it.project_id is None:
                project_name = '（未選專案）'
            else:
                project_name = project_names.get(it.project_id, '（未知專案）')
            entry = item_to_json(it)
            entry['line'] = item_line(it, engineer_name, project_name)
            lines.append(entry)

        panels[name] = {
            "start": to_iso_date(start),
            "end": to_iso_date(add_days(start, 6)),
            "total": len(items),
            "shown": len(lines),
            "items": lines,
        }
    return panels


# --- 工程师 (Engineers) ---

@schedule_bp.route('/engineers', methods=['GET'])
@login_required
def get_engineers():
    """主管看全部启用中的工程师；一般用户只看自己那一笔"""
    ctx = ensure_engineer_for(get_auth_context())
    if ctx.is_admin:
        query = Engineer.query
        if request.args.get('include_inactive') != '1':
            query = query.filter_by(is_active=True)
        engineers = query.order_by(Engineer.name).all()
    else:
        engineers = Engineer.query.filter_by(id=ctx.engineer_id).all() if ctx.engineer_id else []
    return jsonify([engineer_to_json(e) for e in engineers]), 200


def _apply_engineer_fields(engineer, data):
    if 'name' in data:
        name = text_field(data, 'name')
        if not name:
            return "工程师名称不能为空"
        engineer.name = name
    if 'phone' in data:
        engineer.phone = text_field(data, 'phone') or None
    if 'is_active' in data:
        engineer.is_active = bool(data.get('is_active'))
    if 'email' in data:
        email = text_field(data, 'email')
        if not email:
            engineer.user_id = None
            return None
        user = User.query.filter(func.lower(User.email) == email.lower()).first()
        if user is None:
            return "找不到此 email 的使用者"
        linked = Engineer.query.filter(Engineer.user_id == user.id, Engineer.id != engineer.id).first()
        if linked is not None:
            return f"此账号已绑定工程师 {linked.name}"
        engineer.user_id = user.id
    return None


@schedule_bp.route('/engineers', methods=['POST'])
@login_required
@admin_required
@log_activity('新增工程师', action_detail_template='新增工程师 {name}')
def create_engineer():
    data = json_object()
    name = text_field(data, 'name')
    g.log_info = {'name': name}
    if not name:
        return jsonify({"error": "工程师名称不能为空"}), 400

    engineer = Engineer(is_active=True)
    error = _apply_engineer_fields(engineer, data)
    if error:
        return jsonify({"error": error}), 400
    try:
        db.session.add(engineer)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"新增工程师失败: {e}")
        return jsonify({"error": f"新增失败：{e}"}), 500
    return jsonify({"message": "已新增工程师", "engineer": engineer_to_json(engineer)}), 201


@schedule_bp.route('/engineers/<int:engineer_id>', methods=['PUT'])
@login_required
@admin_required
@log_activity('更新工程师', action_detail_template='更新工程师 {engineer_id}')
def update_engineer(engineer_id):
    engineer = Engineer.query.get_or_404(engineer_id)
    error = _apply_engineer_fields(engineer, json_object())
    if error:
        db.session.rollback()
        return jsonify({"error": error}), 400
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"更新工程师失败: {e}")
        return jsonify({"error": f"更新失败：{e}"}), 500
    return jsonify({"message": "已更新", "engineer": engineer_to_json(engineer)}), 200


# --- 行程表 (Grid) ---

@schedule_bp.route('/grid', methods=['GET'])
@login_required
def get_grid():
    """
    多周行程表。start 会对齐到周一；一般用户只看到自己的行程。
    """
    ctx = ensure_engineer_for(get_auth_context())
    weeks = request.args.get('weeks', current_app.config.get('SCHEDULE_VIEW_WEEKS', 4), type=int)
    if weeks < 1 or weeks > 12:
        return jsonify({"error": "weeks 必须在 1 到 12 之间"}), 400
    try:
        start = parse_iso_date(request.args['start']) if request.args.get('start') else date.today()
    except ValueError:
        return jsonify({"error": "无效的日期格式，应为 YYYY-MM-DD"}), 400

    view_start = start_of_week_mon(start)
    view_end = add_days(view_start, weeks * 7)

    if ctx.is_admin:
        engineers = Engineer.query.filter_by(is_active=True).order_by(Engineer.name).all()
    elif ctx.engineer_id:
        engineers = Engineer.query.filter_by(id=ctx.engineer_id).all()
    else:
        engineers = []
    engineer_ids = [e.id for e in engineers]

    try:
        items = ScheduleItem.query.filter(
            ScheduleItem.engineer_id.in_(engineer_ids),
            ScheduleItem.work_date >= view_start,
            ScheduleItem.work_date < view_end,
        ).order_by(ScheduleItem.work_date, ScheduleItem.engineer_id, ScheduleItem.sort_order).all() \
            if engineer_ids else []
    except SQLAlchemyError as e:
        current_app.logger.error(f"读取行程失败: {e}")
        return jsonify({"error": f"读取行程失败：{e}"}), 500

    grid = build_grid(items)
    return jsonify({
        "view_start": to_iso_date(view_start),
        "view_end": to_iso_date(add_days(view_end, -1)),
        "weeks": weeks,
        "prev_start": to_iso_date(add_days(view_start, -weeks * 7)),
        "next_start": to_iso_date(add_days(view_start, weeks * 7)),
        "is_admin": ctx.is_admin,
        "my_engineer_id": ctx.engineer_id,
        "engineers": [engineer_to_json(e) for e in engineers],
        "projects": _load_project_names(ctx, (it.project_id for it in items)),
        "blocks": build_week_blocks(view_start, weeks, [(e.id, e.name) for e in engineers], grid, item_to_json),
    }), 200


# --- 行程 (Schedule Items) ---

def _validate_item_fields(ctx, data, item=None):
    """返回 (字段字典, 错误信息)"""
    fields = {}

    engineer_id = data.get('engineer_id', item.engineer_id if item else None)
    if engineer_id in (None, ''):
        return None, "请选择工程师"
    try:
        engineer_id = int(engineer_id)
    except (TypeError, ValueError):
        return None, "无效的工程师"
    if db.session.get(Engineer, engineer_id) is None:
        return None, "工程师不存在"
    if not can_edit_schedule_for(ctx, engineer_id):
        return None, "一般使用者只能编辑自己的行程"
    fields['engineer_id'] = engineer_id

    raw_date = data.get('work_date', item.work_date if item else None)
    if not raw_date:
        return None, "请选择日期"
    try:
        fields['work_date'] = parse_iso_date(raw_date)
    except ValueError:
        return None, "无效的日期格式，应为 YYYY-MM-DD"

    title = text_field(data, 'title') if 'title' in data else (item.title if item else '')
    if not title:
        return None, "标题不能为空"
    fields['title'] = title
    details = text_field(data, 'details') if 'details' in data else (item.details if item else None)
    fields['details'] = (details or '').strip() or None

    item_type = _parse_item_type(data.get('item_type', item.item_type.value if item else 'work'))
    if item_type is None:
        return None, "无效的行程类型"
    fields['item_type'] = item_type

    project_id = data.get('project_id', item.project_id if item else None)
    if project_id in (None, ''):
        fields['project_id'] = None
    else:
        project = db.session.get(Project, int(project_id)) if str(project_id).isdigit() else None
        if project is None:
            return None, "项目不存在"
        if not can_view_project(ctx, project):
            return None, "不能把行程记在看不到的项目上"
        fields['project_id'] = project.id

    fields['priority'] = clamp_priority(data.get('priority', item.priority if item else 2))
    return fields, None


@schedule_bp.route('/items', methods=['POST'])
@login_required
@log_activity('新增行程', action_detail_template='{work_date} 新增行程 {title}')
def create_item():
    ctx = ensure_engineer_for(get_auth_context())
    data = json_object()
    fields, error = _validate_item_fields(ctx, data)
    if error:
        status = 403 if error.startswith("一般使用者") else 400
        return jsonify({"error": error}), status
    g.log_info = {'work_date': to_iso_date(fields['work_date']), 'title': fields['title']}

    fields['stage_key'], error = _resolve_stage_key(data, fields['title'], fields['details'])
    if error:
        return jsonify({"error": error}), 400

    try:
        same_cell = ScheduleItem.query.filter_by(
            engineer_id=fields['engineer_id'], work_date=fields['work_date']
        ).all()
        item = ScheduleItem(sort_order=next_sort_order(same_cell), **fields)
        db.session.add(item)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"新增行程失败: {e}")
        return jsonify({"error": f"新增失败：{e}"}), 500

    return jsonify({"message": "已新增行程", "item": item_to_json(item)}), 201


@schedule_bp.route('/items/<int:item_id>', methods=['PUT'])
@login_required
@log_activity('更新行程', action_detail_template='更新行程 {item_id}')
def update_item(item_id):
    ctx = ensure_engineer_for(get_auth_context())
    item = ScheduleItem.query.get_or_404(item_id)
    if not can_edit_schedule_for(ctx, item.engineer_id):
        return jsonify({"error": "一般使用者只能编辑自己的行程"}), 403

    data = json_object()
    fields, error = _validate_item_fields(ctx, data, item)
    if error:
        status = 403 if error.startswith("一般使用者") else 400
        return jsonify({"error": error}), status

    if 'stage_key' in data or 'stage' in data:
        fields['stage_key'], error = _resolve_stage_key(data, fields['title'], fields['details'])
        if error:
            return jsonify({"error": error}), 400

    moved = (fields['engineer_id'], fields['work_date']) != (item.engineer_id, item.work_date)
    try:
        if moved:
            same_cell = ScheduleItem.query.filter_by(
                engineer_id=fields['engineer_id'], work_date=fields['work_date']
            ).all()
            fields['sort_order'] = next_sort_order(same_cell)
        for key, value in fields.items():
            setattr(item, key, value)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"更新行程失败: {e}")
        return jsonify({"error": f"保存失败：{e}"}), 500

    return jsonify({"message": "已保存", "item": item_to_json(item)}), 200


@schedule_bp.route('/items/<int:item_id>', methods=['DELETE'])
@login_required
@log_activity('删除行程', action_detail_template='删除行程 {item_id}')
def delete_item(item_id):
    ctx = ensure_engineer_for(get_auth_context())
    item = ScheduleItem.query.get_or_404(item_id)
    if not can_edit_schedule_for(ctx, item.engineer_id):
        return jsonify({"error": "一般使用者只能删除自己的行程"}), 403
    try:
        db.session.delete(item)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"删除行程失败: {e}")
        return jsonify({"error": f"删除失败：{e}"}), 500
    return jsonify({"message": "已删除"}), 200


@schedule_bp.route('/week-panels', methods=['GET'])
@login_required
def get_week_panels():
    limit = current_app.config.get('DASHBOARD_PANEL_LIMIT', 10)
    try:
        panels = build_week_panels(get_auth_context(), limit)
    except SQLAlchemyError as e:
        current_app.logger.error(f"读取行程失败: {e}")
        return jsonify({"error": f"读取行程失败：{e}"}), 500
    return jsonify(panels), 200
