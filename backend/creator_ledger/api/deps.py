"""
FastAPI 依赖注入模块

提供可复用的依赖项，用于路由处理函数中。

- SessionDep: 数据库会话
- CurrentCreator: 从 Bearer JWT 解析出的创作者 ID（创作者端接口）
- InternalCaller: 校验 X-Internal-Token（收入来源服务、认证服务、运维）
"""
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from creator_ledger.api.schemas import TokenPayload
from creator_ledger.core import security
from creator_ledger.core.config import settings
from creator_ledger.core.db import engine

# 从请求头的 Authorization: Bearer <token> 中提取 token
reusable_oauth2 = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话（依赖注入）

    使用 yield 确保会话在请求结束后自动关闭。
    """
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials, Depends(reusable_oauth2)]


def get_current_creator(token: TokenDep) -> str:
    """
    获取当前创作者 ID（依赖注入）

    令牌由上游身份服务签发，sub 为创作者 ID。本服务不维护用户表，
    账户和账本都在首次使用时创建。

    Raises:
        HTTPException: token 无效或缺少 sub 时返回 401
    """
    try:
        payload = jwt.decode(
            token.credentials, settings.SECRET_KEY, algorithms=[security.ALGORITHM]
        )
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return token_data.sub


CurrentCreator = Annotated[str, Depends(get_current_creator)]


def require_internal_token(
    x_internal_token: Annotated[str | None, Header()] = None,
) -> None:
    """校验内部服务令牌（X-Internal-Token）"""
    if not security.verify_internal_token(x_internal_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal token",
        )


InternalCaller = Depends(require_internal_token)
