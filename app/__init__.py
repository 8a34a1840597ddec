# app/__init__.py
import logging

from flask import Flask, jsonify, url_for
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from sqlalchemy import MetaData

from config import config

# ------------------- 1. 初始化扩展 -------------------
# 约束命名约定，保证 Alembic 在 SQLite 上也能生成稳定的约束名
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}
metadata = MetaData(naming_convention=convention)
db = SQLAlchemy(metadata=metadata)

migrate = Migrate()
login_manager = LoginManager()

# 未登录用户访问需要登录的视图时，对应的登录端点
login_manager.login_view = 'auth.login'


@login_manager.unauthorized_handler
def unauthorized():
    # 前后端分离：不重定向，返回401并告知登录入口
    return jsonify({
        'error': '需要身份验证！请登录',
        'code': 'AUTH_REQUIRED',
        'login_url': url_for('auth.login'),
    }), 401


# ------------------- 2. 应用工厂函数 -------------------
def create_app(config_name='default'):
    """
    创建并配置Flask应用实例。
    """
    app = Flask(__name__)

    # a. 从配置对象加载配置
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    logging.getLogger('activity').setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # b. 使用app实例初始化扩展
    db.init_app(app)
    # render_as_batch 确保 Alembic 在 SQLite 上使用批处理模式
    migrate.init_app(app, db, render_as_batch=True)
    login_manager.init_app(app)
    CORS(app, supports_credentials=True)  # 允许跨域请求，并支持credentials（如cookies）

    # c. 告诉Flask-Login如何通过ID加载账号
    from .models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    # d. 注册蓝图
    from .auth import auth_bp
    from .admin import admin_bp
    from .project import project_bp
    from .schedule import schedule_bp
    from .issues import issues_bp
    from .validations import validations_bp
    from .dashboard import dashboard_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(schedule_bp)
    app.register_blueprint(issues_bp)
    app.register_blueprint(validations_bp)
    app.register_blueprint(dashboard_bp)

    from .utils.request import InvalidField

    @app.errorhandler(InvalidField)
    def handle_invalid_field(e):
        db.session.rollback()
        return jsonify({'error': e.message, 'code': 'INVALID_FIELD'}), 400

    # e. 注册命令行命令
    from .setup import register_commands
    register_commands(app)

    return app
