# app/issues/__init__.py
from flask import Blueprint

# 创建一个名为 'issues' 的蓝图
# 所有此蓝图下的路由都将以 /issues 开头
issues_bp = Blueprint('issues', __name__, url_prefix='/issues')

# 导入路由，将其与蓝图关联
from . import routes
