"""
本文件用于定义系统相关的请求体数据模型。
主要类:
- `AdminLoginPayload`: 管理员登录请求体
"""

from pydantic import BaseModel


class AdminLoginPayload(BaseModel):
    """
    输入:
    - `password`: 管理员口令

    作用:
    - 管理员登录接口的请求体，校验通过后写入 Cookie 会话
    """

    password: str
