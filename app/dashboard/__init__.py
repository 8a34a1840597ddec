# app/dashboard/__init__.py
from flask import Blueprint

# 创建一个名为 'dashboard' 的蓝图
# 所有此蓝图下的路由都将以 /dashboard 开头
dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/dashboard')

# 导入路由，将其与蓝图关联
from . import routes
