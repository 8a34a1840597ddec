# app/utils/__init__.py
# 与数据库无关的纯函数工具：进度计算与行程表组装
