# app/validations/__init__.py
from flask import Blueprint

# 创建一个名为 'validations' 的蓝图
# 所有此蓝图下的路由都将以 /validations 开头
validations_bp = Blueprint('validations', __name__, url_prefix='/validations')

# 导入路由，将其与蓝图关联
from . import routes
