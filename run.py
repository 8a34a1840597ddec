# run.py
import os

from app import create_app, db
from app.models import User, Project, Engineer, ScheduleItem

# 根据环境变量创建应用实例
config_name = os.getenv('FLASK_CONFIG') or 'default'
app = create_app(config_name)


# 注册 shell 上下文，方便调试
@app.shell_context_processor
def make_shell_context():
    return dict(db=db, User=User, Project=Project, Engineer=Engineer, ScheduleItem=ScheduleItem)


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 3456)))
