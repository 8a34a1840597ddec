# app/schedule/__init__.py
from flask import Blueprint

# 创建一个名为 'schedule' 的蓝图
# 所有此蓝图下的路由都将以 /schedule 开头
schedule_bp = Blueprint('schedule', __name__, url_prefix='/schedule')

# 导入路由，将其与蓝图关联
from . import routes
