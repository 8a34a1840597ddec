import os
import tempfile
from datetime import timedelta

from dotenv import load_dotenv

# 定位项目根目录
basedir = os.path.abspath(os.path.dirname(__file__))
# 加载 .env 文件中的环境变量
load_dotenv(os.path.join(basedir, '.env'))


class Config:
    """
    基础配置类，包含所有环境通用的配置。
    """
    SECRET_KEY = os.environ.get('SECRET_KEY')
    # 会话生命周期，默认为1小时
    # 注意：os.environ.get返回的是字符串，需要转换为整数
    lifetime_seconds = int(os.environ.get('PERMANENT_SESSION_LIFETIME', 3600))
    PERMANENT_SESSION_LIFETIME = timedelta(seconds=lifetime_seconds)
    ALLOW_REGISTRATION = os.environ.get('ALLOW_REGISTRATION', 'True').lower() in ('true', '1', 't')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # 数据库配置
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False  # 如果想在控制台看到SQL语句，可以设为 True

    # 对象存储（验证文件）配置
    STORAGE_FOLDER = os.environ.get('STORAGE_FOLDER') or os.path.join(basedir, 'storage')
    # 签名下载链接的有效期（秒）
    SIGNED_URL_EXPIRES = int(os.environ.get('SIGNED_URL_EXPIRES', 60))
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 50 * 1024 * 1024))

    # 行程规划
    SCHEDULE_VIEW_WEEKS = int(os.environ.get('SCHEDULE_VIEW_WEEKS', 4))
    DASHBOARD_PANEL_LIMIT = int(os.environ.get('DASHBOARD_PANEL_LIMIT', 10))

    @staticmethod
    def init_app(app):
        # 确保存储文件夹存在
        os.makedirs(app.config['STORAGE_FOLDER'], exist_ok=True)


class DevelopmentConfig(Config):
    """
    开发环境配置。
    """
    DEBUG = True
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
                              'sqlite:///' + os.path.join(basedir, 'rollout-dev.db')
    SQLALCHEMY_ECHO = True  # 开发时建议开启，方便调试


class ProductionConfig(Config):
    """
    生产环境配置。
    """
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
                              'sqlite:///' + os.path.join(basedir, 'rollout.db')


class TestingConfig(Config):
    """
    测试环境配置。
    """
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    ALLOW_REGISTRATION = True
    STORAGE_FOLDER = os.path.join(tempfile.gettempdir(), 'rollout-test-storage')
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or \
                              'sqlite:///:memory:'  # 测试时使用内存数据库，速度快


# 将配置类名映射到字符串，方便在 app factory 中根据字符串选择配置
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
