# app/decorators.py

import logging
from functools import wraps

from flask import jsonify, request, g
from flask_login import current_user

from .context import get_auth_context

activity_logger = logging.getLogger('activity')


def admin_required(f):
    """
    检查当前登录的账号是否为主管（profiles.is_admin）。
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': '需要身份验证！请登录', 'code': 'AUTH_REQUIRED'}), 401
        ctx = get_auth_context()
        if not ctx.is_admin:
            return jsonify({'error': '你不是主管（is_admin=false），无法执行此操作'}), 403
        return f(*args, **kwargs)

    return decorated_function


def log_activity(action_type, action_detail_template=""):
    """
    记录用户活动的装饰器。
    在视图执行后写一条活动日志，详情模板可以使用路由参数和 g.log_info 中的字段。
    """

    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            account = None
            if current_user.is_authenticated:
                account = current_user.email

            response = f(*args, **kwargs)

            try:
                if account is None and current_user.is_authenticated:
                    account = current_user.email

                module = "default"
                if request.endpoint:
                    module = request.endpoint.split('.')[0]

                format_data = kwargs.copy()
                if hasattr(g, 'log_info') and isinstance(g.log_info, dict):
                    format_data.update(g.log_info)
                detail = action_detail_template.format(**format_data)

                status_code = 200
                if isinstance(response, tuple) and len(response) > 1:
                    status_code = response[1]
                elif hasattr(response, 'status_code'):
                    status_code = response.status_code

                activity_logger.info(
                    f"[{module}] {action_type} account={account or 'anonymous'} "
                    f"{request.method} {request.endpoint} status={status_code} {detail}".rstrip()
                )
            except (KeyError, IndexError) as e:
                activity_logger.warning(f"活动日志格式化失败 - {action_type}: {e}")
            finally:
                if hasattr(g, 'log_info'):
                    del g.log_info

            return response

        return wrapper

    return decorator
