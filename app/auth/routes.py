# app/auth/routes.py
import re

from flask import request, jsonify, session, g, current_app
from flask_login import login_user, logout_user, current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from . import auth_bp
from .. import db
from ..context import get_auth_context
from ..decorators import log_activity
from ..models import User, Profile
from ..utils.request import json_object, text_field

EMAIL_PATTERN = re.compile(r"[^@]+@[^@]+\.[^@]+")


def account_to_json(ctx):
    return {
        "id": ctx.account_id,
        "email": ctx.email,
        "name": ctx.name,
        "display_name": ctx.display_name,
        "is_admin": ctx.is_admin,
        "engineer_id": ctx.engineer_id,
    }


@auth_bp.route('/register', methods=['POST'])
@log_activity('注册', action_detail_template='注册账号 {email}')
def register():
    """
    注册API端点。
    email + 密码 + 姓名（姓名只在注册时必填，存入 profiles.name）。
    """
    if not current_app.config.get('ALLOW_REGISTRATION', False):
        return jsonify({"error": "注册功能当前已关闭", "code": "REGISTRATION_DISABLED"}), 403
    if not request.is_json:
        return jsonify({"error": "请求必须是JSON格式"}), 415
    if current_user.is_authenticated:
        return jsonify({"error": "您已登录，无法注册新账户"}), 400

    data = json_object()
    email = text_field(data, 'email').lower()
    password = data.get('password') or ''
    name = text_field(data, 'name')
    g.log_info = {'email': email}

    if not name:
        return jsonify({"error": "请输入姓名（注册必填）"}), 400
    if not email or not isinstance(password, str) or not password:
        return jsonify({"error": "缺少必要字段：email, password"}), 400
    if not EMAIL_PATTERN.match(email):
        return jsonify({"error": "无效的邮箱格式"}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({"error": "该邮箱已被注册"}), 409

    try:
        new_user = User(email=email)
        new_user.set_password(password)
        new_user.profile = Profile(name=name, is_admin=False)
        db.session.add(new_user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"注册失败: {e}")
        return jsonify({"error": f"注册失败：{e}"}), 500

    return jsonify({
        "message": "注册成功",
        "user": {"id": new_user.id, "email": new_user.email, "name": name}
    }), 201


@auth_bp.route('/login', methods=['POST'])
@log_activity('登录', action_detail_template='账号 {email} 登录系统')
def login():
    """
    登录API端点。
    已登录的账号会先被登出再重新登录。
    """
    if current_user.is_authenticated:
        logout_user()
        session.clear()

    if not request.is_json:
        return jsonify({"error": "请求必须是JSON格式", "code": "INVALID_REQUEST_FORMAT"}), 415
    data = json_object()
    email = text_field(data, 'email').lower()
    password = data.get('password')
    g.log_info = {'email': email}
    if not email or not isinstance(password, str) or not password:
        return jsonify({"error": "缺少邮箱或密码", "code": "MISSING_CREDENTIALS"}), 400

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        return jsonify({"error": "邮箱或密码错误", "code": "INVALID_CREDENTIALS"}), 401

    session.permanent = True
    login_user(user)

    return jsonify({
        "message": "登录成功",
        "user": account_to_json(get_auth_context())
    }), 200


@auth_bp.route('/logout', methods=['POST'])
@login_required
@log_activity('退出系统', action_detail_template='账号 {email} 登出系统')
def logout():
    g.log_info = {'email': current_user.email}
    logout_user()
    session.clear()
    return jsonify({"message": "登出成功"}), 200


@auth_bp.route('/status', methods=['GET'])
def status():
    """
    返回当前登录的账号、是否为主管以及绑定的工程师。
    """
    ctx = get_auth_context()
    if ctx is None:
        return jsonify({"logged_in": False}), 200
    return jsonify({"logged_in": True, "data": {"user": account_to_json(ctx)}}), 200


@auth_bp.route('/public/registration-status', methods=['GET'])
def public_registration_status():
    """
    公开的API端点，用于检查是否允许注册。
    """
    response = jsonify({"allow_registration": bool(current_app.config.get('ALLOW_REGISTRATION', False))})
    response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
    return response
