"""
工具路由模块

提供系统工具类的 API 端点，如健康检查等。
"""
from fastapi import APIRouter

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    """
    健康检查端点

    用于负载均衡器和容器编排系统的存活探针，返回 True 表示服务正常。

    请求路径: GET /api/v1/utils/health-check/
    """
    return True
