# app/storage/service.py
"""
本地文件系统上的对象存储。

对象按 bucket/path 存放在 STORAGE_FOLDER 下；下载通过带签名、有时效的
token 完成，token 本身就是访问凭证。
"""
import logging
import os
import shutil
from datetime import datetime, timezone

from flask import current_app
from itsdangerous import BadSignature, URLSafeTimedSerializer

logger = logging.getLogger(__name__)

SIGNED_URL_SALT = 'storage-signed-url'


class StorageError(Exception):
    """存储操作失败"""

    def __init__(self, message, path=None):
        self.message = message
        self.path = path
        super().__init__(self.message)


class SignedUrlInvalid(StorageError):
    pass


class SignedUrlExpired(StorageError):
    pass


class LocalObjectStorage:
    """处理对象上传、删除与签名链接的业务逻辑"""

    def __init__(self, root, secret_key):
        self.root = os.path.abspath(root)
        self.serializer = URLSafeTimedSerializer(secret_key, salt=SIGNED_URL_SALT)

    def resolve(self, bucket, path):
        """返回对象的绝对路径，禁止越出 bucket 目录"""
        bucket_dir = os.path.join(self.root, bucket)
        full_path = os.path.abspath(os.path.join(bucket_dir, path))
        if os.path.commonpath([full_path, bucket_dir]) != bucket_dir or full_path == bucket_dir:
            raise StorageError(f"非法的对象路径: {path}", path)
        return full_path

    def exists(self, bucket, path):
        return os.path.isfile(self.resolve(bucket, path))

    def upload(self, bucket, path, stream, content_type=None, upsert=False):
        """写入对象，返回写入的字节数"""
        full_path = self.resolve(bucket, path)
        if not upsert and os.path.exists(full_path):
            raise StorageError(f"对象已存在: {path}", path)
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, 'wb') as f:
                shutil.copyfileobj(stream, f)
                size = f.tell()
        except OSError as e:
            logger.error(f"写入对象失败 {bucket}/{path}: {e}")
            raise StorageError(f"写入对象失败: {e}", path) from e
        logger.info(f"Stored object {bucket}/{path} ({content_type or 'unknown type'}, {size} bytes)")
        return size

    def remove(self, bucket, paths):
        """删除多个对象；不存在的对象直接跳过，返回实际删除的路径"""
        removed = []
        for path in paths:
            full_path = self.resolve(bucket, path)
            try:
                os.remove(full_path)
                removed.append(path)
            except FileNotFoundError:
                logger.warning(f"对象不存在，跳过删除: {bucket}/{path}")
            except OSError as e:
                raise StorageError(f"删除对象失败: {e}", path) from e
        return removed

    def create_signed_url(self, bucket, path, expires_in):
        """生成签名 token；调用方负责拼成完整下载链接"""
        if not self.exists(bucket, path):
            raise StorageError(f"对象不存在: {path}", path)
        return self.serializer.dumps({'b': bucket, 'p': path, 'e': int(expires_in)})

    def verify_signed_token(self, token):
        """校验 token，返回 (bucket, path)"""
        try:
            data, signed_at = self.serializer.loads(token, return_timestamp=True)
        except BadSignature as e:
            raise SignedUrlInvalid('下载链接无效') from e

        if signed_at.tzinfo is None:
            signed_at = signed_at.replace(tzinfo=timezone.utc)
        age = (datetime.now(timezone.utc) - signed_at).total_seconds()
        if age > data.get('e', 0):
            raise SignedUrlExpired('下载链接已过期', data.get('p'))
        return data['b'], data['p']


def get_storage():
    return LocalObjectStorage(current_app.config['STORAGE_FOLDER'], current_app.config['SECRET_KEY'])
