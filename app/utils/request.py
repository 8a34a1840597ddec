# app/utils/request.py
"""
读取 JSON 请求正文的小工具。格式不对时抛出 InvalidField，
由应用工厂注册的错误处理器统一转成 400。
"""
from flask import request


class InvalidField(ValueError):
    """请求字段格式错误"""

    def __init__(self, message, field=None):
        self.message = message
        self.field = field
        super().__init__(self.message)


def json_object():
    """请求正文必须是 JSON 对象；没有正文时视为空对象"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidField("请求正文必须是 JSON 对象")
    return data


def text_field(data, key, default=''):
    """取出去掉首尾空白的字符串；数字会转成字符串，其他类型视为格式错误"""
    value = data.get(key, default)
    if value is None:
        return ''
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidField(f"字段 {key} 必须是字符串", key)
    return str(value).strip()


def id_field(data, key):
    """取出正整数 id，空值返回 None"""
    value = data.get(key)
    if value in (None, ''):
        return None
    if isinstance(value, bool):
        raise InvalidField(f"字段 {key} 必须是整数", key)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise InvalidField(f"字段 {key} 必须是整数", key)


def dict_field(data, key):
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidField(f"字段 {key} 必须是对象", key)
    return value
