"""
API 路由聚合模块

将所有业务路由模块聚合到一个统一的 router 中，
这个 router 会被注册到主应用（creator_ledger/main.py）上。

路由模块说明：
- revenue: 收入上报、余额、收入流水
- verification: 打款账户认证、提现资格
- payouts: 发起提现、提现列表与详情
- webhooks: 支付处理方状态回调
- ops: 运维查询（滞留提现）
- utils: 健康检查
"""
from fastapi import APIRouter

from creator_ledger.api.routes import (
    ops,
    payouts,
    revenue,
    utils,
    verification,
    webhooks,
)

api_router = APIRouter()

api_router.include_router(revenue.router)  # /revenue/*
api_router.include_router(verification.router)  # /verification/*
api_router.include_router(payouts.router)  # /payouts/*
api_router.include_router(webhooks.router)  # /webhooks/*
api_router.include_router(ops.router)  # /ops/*
api_router.include_router(utils.router)  # /utils/*
