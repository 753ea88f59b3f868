"""
安全相关工具

- 创作者端接口：HS256 JWT，sub 为创作者 ID（由上游身份服务签发）
- 内部接口：X-Internal-Token 常量时间比较
- 支付处理方 Webhook：原始请求体的 HMAC-SHA256 签名
"""
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from creator_ledger.core.config import settings

ALGORITHM = "HS256"


def create_access_token(subject: str | Any, expires_delta: timedelta | None = None) -> str:
    """
    签发访问令牌

    正式环境中令牌由身份服务签发，这里用于运维脚本和测试。

    Args:
        subject: 创作者 ID
        expires_delta: 有效期，默认取 ACCESS_TOKEN_EXPIRE_MINUTES
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject)}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_internal_token(token: str | None) -> bool:
    """校验内部服务令牌"""
    if not token:
        return False
    return hmac.compare_digest(token, settings.INTERNAL_API_TOKEN)


def sign_webhook_payload(payload: bytes, secret: str) -> str:
    """计算 Webhook 请求体签名（十六进制）"""
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes, signature: str | None) -> bool:
    """
    验证支付处理方 Webhook 签名

    未配置密钥时仅在本地环境放行，其他环境一律拒绝。

    Args:
        payload: 请求体原始字节
        signature: X-Processor-Signature 头部值
    """
    secret = settings.PROCESSOR_WEBHOOK_SECRET
    if not secret:
        return settings.ENVIRONMENT == "local"
    if not signature:
        return False
    expected = sign_webhook_payload(payload, secret)
    return hmac.compare_digest(signature, expected)
