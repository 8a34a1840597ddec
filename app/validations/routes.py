# app/validations/routes.py
import os
import re
import time

from flask import request, jsonify, g, current_app, send_file, url_for
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from . import validations_bp
from .. import db
from ..context import get_auth_context
from ..decorators import log_activity
from ..models import Project, Validation
from ..policies import can_view_project, can_contribute_to_project, can_delete_validation
from ..storage import get_storage, StorageError, SignedUrlExpired, SignedUrlInvalid
from ..utils.request import json_object, text_field

BUCKET = 'validations'


def safe_file_name(name):
    """非 ASCII 字母数字、点、横线的字符一律换成底线"""
    cleaned = re.sub(r'[^\w.\-]+', '_', name or '', flags=re.ASCII)
    return cleaned or 'file'


def object_path(project_id, file_name):
    return f"{project_id}/{int(time.time() * 1000)}_{safe_file_name(file_name)}"


def validation_to_json(validation, ctx=None):
    return {
        "id": validation.id,
        "project_id": validation.project_id,
        "title": validation.title,
        "description": validation.description,
        "file_path": validation.file_path,
        "file_name": validation.file_name,
        "file_type": validation.file_type,
        "file_size": validation.file_size,
        "uploaded_by": validation.uploaded_by,
        "uploader_name": validation.uploader.display_name if validation.uploader else None,
        "created_at": validation.created_at.isoformat() if validation.created_at else None,
        "can_delete": can_delete_validation(ctx, validation) if ctx else False,
    }


@validations_bp.route('/projects/<int:project_id>', methods=['GET'])
@login_required
def get_validations(project_id):
    ctx = get_auth_context()
    project = Project.query.get_or_404(project_id)
    if not can_view_project(ctx, project):
        return jsonify({"error": "权限不足"}), 403
    rows = project.validations.order_by(Validation.created_at.desc(), Validation.id.desc()).all()
    return jsonify({
        "project": {"id": project.id, "name": project.name},
        "can_upload": can_contribute_to_project(ctx, project),
        "validations": [validation_to_json(v, ctx) for v in rows],
    }), 200


@validations_bp.route('/projects/<int:project_id>', methods=['POST'])
@login_required
@log_activity('上传验证文件', action_detail_template='为项目 {project_id} 上传 {file_name}')
def upload_validation(project_id):
    """
    先把文件写入存储，再新增记录；记录写入失败时删除刚上传的文件。
    """
    ctx = get_auth_context()
    project = Project.query.get_or_404(project_id)
    if not can_contribute_to_project(ctx, project):
        return jsonify({"error": "你没有在此项目上传文件的权限"}), 403

    title = (request.form.get('title') or '').strip()
    if not title:
        return jsonify({"error": "请输入标题"}), 400
    if 'file' not in request.files:
        return jsonify({"error": "请求中未找到文件部分"}), 400
    file = request.files['file']
    if file.filename == '':
        return jsonify({"error": "未选择文件"}), 400
    g.log_info = {'file_name': file.filename}

    storage = get_storage()
    path = object_path(project.id, file.filename)
    try:
        file_size = storage.upload(BUCKET, path, file.stream, content_type=file.mimetype, upsert=False)
    except StorageError as e:
        current_app.logger.error(f"上传验证文件失败: {e.message}")
        return jsonify({"error": f"上传失败：{e.message}"}), 500

    try:
        validation = Validation(
            project_id=project.id,
            title=title,
            description=(request.form.get('description') or '').strip() or None,
            file_path=path,
            file_name=file.filename,
            file_type=file.mimetype or None,
            file_size=file_size,
            uploaded_by=ctx.account_id,
        )
        db.session.add(validation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"写入验证记录失败，删除已上传文件 {path}: {e}")
        try:
            storage.remove(BUCKET, [path])
        except StorageError as cleanup_error:
            current_app.logger.error(f"清理上传文件失败 {path}: {cleanup_error.message}")
        return jsonify({"error": f"上传失败：{e}"}), 500

    return jsonify({"message": "上传成功", "validation": validation_to_json(validation, ctx)}), 201


@validations_bp.route('/<int:validation_id>', methods=['PUT'])
@login_required
@log_activity('更新验证文件', action_detail_template='更新验证文件 {validation_id}')
def update_validation(validation_id):
    ctx = get_auth_context()
    validation = Validation.query.get_or_404(validation_id)
    if not can_contribute_to_project(ctx, validation.project):
        return jsonify({"error": "权限不足"}), 403

    data = json_object()
    if 'title' in data:
        title = text_field(data, 'title')
        if not title:
            return jsonify({"error": "请输入标题"}), 400
        validation.title = title
    if 'description' in data:
        validation.description = text_field(data, 'description') or None

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"更新验证文件失败: {e}")
        return jsonify({"error": f"更新失败：{e}"}), 500
    return jsonify({"message": "已更新", "validation": validation_to_json(validation, ctx)}), 200


@validations_bp.route('/<int:validation_id>/signed-url', methods=['POST'])
@login_required
def create_signed_url(validation_id):
    ctx = get_auth_context()
    validation = Validation.query.get_or_404(validation_id)
    if not can_view_project(ctx, validation.project):
        return jsonify({"error": "权限不足"}), 403

    expires_in = current_app.config.get('SIGNED_URL_EXPIRES', 60)
    try:
        token = get_storage().create_signed_url(BUCKET, validation.file_path, expires_in)
    except StorageError as e:
        current_app.logger.error(f"产生下载链接失败: {e.message}")
        return jsonify({"error": f"下载失败：{e.message}"}), 500

    return jsonify({
        "signed_url": url_for('validations.download', token=token, _external=True),
        "expires_in": expires_in,
    }), 200


@validations_bp.route('/download/<token>', methods=['GET'])
def download(token):
    """token 本身就是下载凭证，不需要登录"""
    storage = get_storage()
    try:
        bucket, path = storage.verify_signed_token(token)
        full_path = storage.resolve(bucket, path)
    except SignedUrlExpired:
        return jsonify({"error": "下载链接已过期"}), 403
    except SignedUrlInvalid:
        return jsonify({"error": "下载链接无效"}), 403
    except StorageError as e:
        return jsonify({"error": f"下载失败：{e.message}"}), 400

    if not os.path.isfile(full_path):
        return jsonify({"error": "文件未在服务器上找到"}), 404

    record = Validation.query.filter_by(file_path=path).first() if bucket == BUCKET else None
    return send_file(
        full_path,
        mimetype=record.file_type if record and record.file_type else None,
        as_attachment=True,
        download_name=record.file_name if record else os.path.basename(path),
    )


@validations_bp.route('/<int:validation_id>', methods=['DELETE'])
@login_required
@log_activity('删除验证文件', action_detail_template='删除验证文件 {file_name}')
def delete_validation(validation_id):
    ctx = get_auth_context()
    validation = Validation.query.get_or_404(validation_id)
    g.log_info = {'file_name': validation.file_name}
    if not can_delete_validation(ctx, validation):
        return jsonify({"error": "只有上传者或项目 manager 可以删除"}), 403

    file_path = validation.file_path
    try:
        db.session.delete(validation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"删除验证记录失败: {e}")
        return jsonify({"error": f"删除失败：{e}"}), 500

    try:
        get_storage().remove(BUCKET, [file_path])
    except StorageError as e:
        current_app.logger.error(f"删除验证文件 {file_path} 失败: {e.message}")

    return jsonify({"message": "已删除"}), 200
