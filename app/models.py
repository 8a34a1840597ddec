# app/models.py
# 项目进度追踪 - 完整模型定义
from datetime import datetime
from enum import Enum as PyEnum

import bcrypt
from flask_login import UserMixin
from sqlalchemy import UniqueConstraint

from . import db


# ------------------- 枚举 (Enums) -------------------
class ItemTypeEnum(PyEnum):
    WORK = 'work'    # 工作
    LEAVE = 'leave'  # 休假
    MOVE = 'move'    # 移动


class IssueStatusEnum(PyEnum):
    OPEN = 'open'
    DOING = 'doing'
    DONE = 'done'


class MemberRoleEnum(PyEnum):
    MANAGER = 'manager'  # 可管理项目
    MEMBER = 'member'    # 一般成员
    VIEWER = 'viewer'    # 只读


# ------------------- 账号与资料 (Account & Profile) -------------------

class User(UserMixin, db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    profile = db.relationship('Profile', uselist=False, back_populates='user', cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    def check_password(self, password):
        return bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8'))

    @property
    def display_name(self):
        if self.profile and self.profile.name:
            return self.profile.name
        return self.email


class Profile(db.Model):
    __tablename__ = 'profiles'
    id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    name = db.Column(db.String(80))
    is_admin = db.Column(db.Boolean, default=False, nullable=False, comment="主管标记")

    user = db.relationship('User', back_populates='profile')


# ------------------- 项目 (Projects) -------------------

class Project(db.Model):
    __tablename__ = 'projects'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    # 六阶段进度 + _meta，结构见 utils/progress.py
    progress = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.now)

    owner = db.relationship('User', backref=db.backref('owned_projects', lazy='dynamic'))
    members = db.relationship('ProjectMember', back_populates='project', cascade='all, delete-orphan')
    schedule_items = db.relationship('ScheduleItem', back_populates='project', lazy='dynamic',
                                     passive_deletes=True)
    issues = db.relationship('Issue', back_populates='project', lazy='dynamic', cascade='all, delete-orphan')
    validations = db.relationship('Validation', back_populates='project', lazy='dynamic',
                                  cascade='all, delete-orphan')


class ProjectMember(db.Model):
    __tablename__ = 'project_members'
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    role_in_project = db.Column(db.Enum(MemberRoleEnum), nullable=False, default=MemberRoleEnum.MEMBER)
    created_at = db.Column(db.DateTime, default=datetime.now)

    project = db.relationship('Project', back_populates='members')
    user = db.relationship('User', backref=db.backref('memberships', cascade='all, delete-orphan'))


# ------------------- 工程师与行程 (Engineers & Schedule) -------------------

class Engineer(db.Model):
    __tablename__ = 'engineers'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), unique=True)
    name = db.Column(db.String(80), nullable=False)
    phone = db.Column(db.String(40))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    user = db.relationship('User', backref=db.backref('engineer', uselist=False))
    schedule_items = db.relationship('ScheduleItem', back_populates='engineer', lazy='dynamic',
                                     cascade='all, delete-orphan')


class ScheduleItem(db.Model):
    __tablename__ = 'schedule_items'
    id = db.Column(db.Integer, primary_key=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey('engineers.id', ondelete='CASCADE'), nullable=False)
    work_date = db.Column(db.Date, nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='SET NULL'))
    title = db.Column(db.String(200), nullable=False)
    details = db.Column(db.Text)
    item_type = db.Column(db.Enum(ItemTypeEnum), nullable=False, default=ItemTypeEnum.WORK)
    priority = db.Column(db.Integer, default=2, comment="1=高, 2=中, 3=低")
    stage_key = db.Column(db.String(40), comment="所属项目阶段，创建时确定")
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    engineer = db.relationship('Engineer', back_populates='schedule_items')
    project = db.relationship('Project', back_populates='schedule_items')


# ------------------- 异常追踪 (Issues) -------------------

class Issue(db.Model):
    __tablename__ = 'issues'
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    severity = db.Column(db.Integer, default=2, nullable=False, comment="1=轻微, 2=一般, 3=严重")
    status = db.Column(db.Enum(IssueStatusEnum), default=IssueStatusEnum.OPEN, nullable=False)
    reporter_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    assignee_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    project = db.relationship('Project', back_populates='issues')
    reporter = db.relationship('User', foreign_keys=[reporter_id])
    assignee = db.relationship('User', foreign_keys=[assignee_id])
    comments = db.relationship('IssueComment', back_populates='issue', cascade='all, delete-orphan',
                               order_by='IssueComment.created_at')


class IssueComment(db.Model):
    __tablename__ = 'issue_comments'
    id = db.Column(db.Integer, primary_key=True)
    issue_id = db.Column(db.Integer, db.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    issue = db.relationship('Issue', back_populates='comments')
    author = db.relationship('User')


# ------------------- 验证文件 (Validations) -------------------

class Validation(db.Model):
    __tablename__ = 'validations'
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    file_path = db.Column(db.String(255), nullable=False, comment="对象存储中的路径")
    file_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(100))
    file_size = db.Column(db.Integer)
    uploaded_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.now)

    project = db.relationship('Project', back_populates='validations')
    uploader = db.relationship('User')
    __table_args__ = (UniqueConstraint('file_path', name='_validation_file_path_uc'),)
