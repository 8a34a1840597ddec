# app/setup.py
import click

from . import db
from .models import User, Profile, Engineer


def register_commands(app):
    @app.cli.command('init-db')
    def init_db():
        """创建所有数据表。可以安全地多次运行。"""
        db.create_all()
        click.echo('数据表已创建。')

    @app.cli.command('create-admin')
    @click.option('--email', required=True, help='主管账号 email')
    @click.option('--password', required=True, help='登录密码')
    @click.option('--name', default=None, help='显示名称')
    def create_admin(email, password, name):
        """
        建立主管账号；email 已存在时直接提升为主管并重设密码。
        """
        email = email.strip().lower()
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email)
            db.session.add(user)
            click.echo(f"  Created 账号： {email}")
        else:
            click.echo(f"  账号 {email} 已存在，提升为主管")
        user.set_password(password)

        if user.profile is None:
            user.profile = Profile(name=name or email.split('@')[0], is_admin=True)
        else:
            user.profile.is_admin = True
            if name:
                user.profile.name = name
        db.session.commit()
        click.echo('主管账号已就绪。')

    @app.cli.command('seed-engineers')
    def seed_engineers():
        """为每个尚未绑定工程师的一般账号建立一笔工程师资料。"""
        created = 0
        users = User.query.join(Profile).filter(Profile.is_admin.is_(False)).all()
        with click.progressbar(users) as bar:
            for user in bar:
                if Engineer.query.filter_by(user_id=user.id).first() is not None:
                    continue
                db.session.add(Engineer(user_id=user.id, name=user.display_name, is_active=True))
                created += 1
        db.session.commit()
        click.echo(f'已建立 {created} 笔工程师资料。')
