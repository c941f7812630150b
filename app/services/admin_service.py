"""
本文件用于实现管理员会话与调用方身份识别。
主要函数/类:
- `Caller`: 当前请求的调用方（用户 ID / 是否管理员）
- `create_admin_session_token` / `revoke_admin_session_token`: 管理员会话 token 的签发与注销
- `verify_admin_password`: 校验管理员口令
- `resolve_caller`: 从请求中识别调用方

普通用户由上游认证网关写入 `X-User-Id` 请求头；管理员通过登录后的 Cookie 会话识别。
"""

from __future__ import annotations

import hmac
import secrets
import time
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Request

from app.core.config import get_settings

ADMIN_COOKIE_NAME = "logicore_admin_token"
USER_ID_HEADER = "X-User-Id"
_TOKEN_TTL_SECONDS = 12 * 60 * 60
_TOKENS: Dict[str, float] = {}


@dataclass(frozen=True)
class Caller:
    user_id: Optional[int]
    is_admin: bool = False

    @property
    def data_scope(self) -> Optional[int]:
        # 管理员查看全部用户数据
        return None if self.is_admin else self.user_id


def create_admin_session_token() -> str:
    token = secrets.token_urlsafe(32)
    _TOKENS[token] = time.time() + _TOKEN_TTL_SECONDS
    return token


def revoke_admin_session_token(token: Optional[str]) -> None:
    if token:
        _TOKENS.pop(token, None)


def _is_token_valid(token: Optional[str]) -> bool:
    if not token:
        return False
    exp = _TOKENS.get(token)
    if not exp:
        return False
    if exp < time.time():
        _TOKENS.pop(token, None)
        return False
    return True


def is_admin_request(request: Request) -> bool:
    return _is_token_valid(request.cookies.get(ADMIN_COOKIE_NAME))


def verify_admin_password(password: str) -> bool:
    expected = get_settings().ADMIN_PASSWORD
    if not expected:
        return False
    return hmac.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))


def resolve_caller(request: Request) -> Optional[Caller]:
    """
    输入:
    - `request`: FastAPI 请求对象

    输出:
    - `Caller`；既不是管理员也没有合法 `X-User-Id` 时返回 None

    作用:
    - 统一识别调用方，供路由决定数据范围与访问权限
    """

    if is_admin_request(request):
        return Caller(user_id=None, is_admin=True)

    raw = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not raw.isdigit():
        return None
    return Caller(user_id=int(raw))
