# app/dashboard/routes.py
from flask import jsonify, current_app
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from . import dashboard_bp
from ..context import get_auth_context
from ..models import Project
from ..policies import visible_projects_query
from ..schedule.routes import build_week_panels
from ..utils.progress import STAGES, normalize_progress, overall_percent


@dashboard_bp.route('/', methods=['GET'])
@login_required
def get_dashboard():
    """首页：显示名称、可见项目的六阶段百分比与本周 / 下周行程"""
    ctx = get_auth_context()
    try:
        projects = visible_projects_query(ctx).order_by(Project.created_at.desc(), Project.id.desc()).all()
        panels = build_week_panels(ctx, current_app.config.get('DASHBOARD_PANEL_LIMIT', 10))
    except SQLAlchemyError as e:
        current_app.logger.error(f"读取首页数据失败: {e}")
        return jsonify({"error": f"读取失败：{e}"}), 500

    project_rows = []
    for project in projects:
        progress = normalize_progress(project.progress)
        project_rows.append({
            "id": project.id,
            "name": project.name,
            "stages": [{
                "key": stage['key'],
                "label": stage['label'],
                "percent": progress[stage['key']]['percent'],
            } for stage in STAGES],
            "overall": overall_percent(progress),
        })

    return jsonify({
        "display_name": ctx.display_name,
        "is_admin": ctx.is_admin,
        "projects": project_rows,
        "week_panels": panels,
    }), 200
