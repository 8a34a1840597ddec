# app/context.py
"""
请求级的身份上下文。

每个请求只计算一次 {account_id, is_admin, engineer_id}，缓存在 flask.g 上，
所有视图都从这里取授权相关的信息，不再各自查询。
"""
from dataclasses import dataclass
from typing import Optional

from flask import g
from flask_login import current_user

from . import db
from .models import Engineer


@dataclass
class AuthContext:
    account_id: int
    email: str
    name: Optional[str]
    is_admin: bool
    engineer_id: Optional[int]

    @property
    def display_name(self) -> str:
        return self.name or self.email


def build_auth_context(user) -> AuthContext:
    profile = user.profile
    engineer = Engineer.query.filter_by(user_id=user.id, is_active=True).first()
    return AuthContext(
        account_id=user.id,
        email=user.email,
        name=profile.name if profile else None,
        is_admin=bool(profile and profile.is_admin),
        engineer_id=engineer.id if engineer else None,
    )


def get_auth_context() -> Optional[AuthContext]:
    """返回当前请求的上下文；未登录时返回 None"""
    if not current_user.is_authenticated:
        return None
    ctx = g.get('auth_context')
    # 缓存必须属于当前登录的账号
    if ctx is None or ctx.account_id != current_user.id:
        ctx = g.auth_context = build_auth_context(current_user)
    return ctx


def ensure_engineer_for(ctx: AuthContext) -> AuthContext:
    """
    一般用户必须绑定一笔工程师资料，没有的话就用资料名称（或 email）建立一笔。
    管理员不需要绑定。
    """
    if ctx.is_admin or ctx.engineer_id is not None:
        return ctx

    engineer = Engineer.query.filter_by(user_id=ctx.account_id).first()
    if engineer is None:
        engineer = Engineer(user_id=ctx.account_id, name=ctx.display_name or '未命名', phone=None, is_active=True)
        db.session.add(engineer)
        db.session.commit()
    if engineer.is_active:
        ctx.engineer_id = engineer.id
    return ctx
