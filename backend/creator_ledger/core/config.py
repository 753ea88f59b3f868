"""
应用配置模块

使用 Pydantic Settings 管理所有环境变量和配置。
配置从项目根目录的 .env 文件读取，支持类型验证和默认值。

配置分组：
- 基础：API 前缀、JWT 密钥、运行环境、CORS
- 数据库：PostgreSQL 连接参数
- 提现策略：最低提现金额、同时进行中的提现上限、默认币种
- 支付处理方：API 地址、密钥、Webhook 签名密钥、重试参数
- 运维：滞留提现告警阈值、Redis、Sentry
"""
import secrets  # 用于生成安全的随机字符串
import warnings  # 用于发出警告
from decimal import Decimal  # 金额使用 Decimal，避免浮点误差
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    """
    解析 CORS 配置值

    支持逗号分隔的字符串或列表两种格式。

    Raises:
        ValueError: 当输入格式不正确时
    """
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """
    应用配置类

    配置来源优先级：
    1. 环境变量（最高优先级）
    2. .env 文件
    3. 代码中的默认值（最低优先级）
    """
    model_config = SettingsConfigDict(
        # 使用项目根目录的 .env 文件（backend/ 目录的上一级）
        env_file="../.env",
        env_ignore_empty=True,  # 忽略空的环境变量
        extra="ignore",  # 忽略未定义的额外字段
    )
    API_V1_STR: str = "/api/v1"  # API 版本前缀
    SECRET_KEY: str = secrets.token_urlsafe(32)  # JWT 签名密钥（默认随机生成）
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # JWT token 过期时间（分钟）
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        """CORS 允许的源（去除尾部斜杠）"""
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str = "Creator Revenue Ledger"
    SENTRY_DSN: HttpUrl | None = None

    # Snowflake
    SNOWFLAKE_NODE_ID: int = 0

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "creator_ledger"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> PostgresDsn:
        return PostgresDsn.build(
            scheme="postgresql+psycopg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    # 提现策略
    MINIMUM_PAYOUT_AMOUNT: Decimal = Decimal("25.00")  # 单笔最低提现金额
    MAX_CONCURRENT_PENDING_PAYOUTS: int = 3  # 同一创作者未终结的提现数量上限
    DEFAULT_CURRENCY: str = "USD"  # 新建账本的默认币种

    # 支付处理方（外部打款服务）
    PROCESSOR_MOCK: bool = True  # 是否使用模拟模式（本地开发时）
    PROCESSOR_BASE_URL: str = "https://api.sandbox.transferwise.tech"
    PROCESSOR_API_TOKEN: str | None = None
    PROCESSOR_TIMEOUT_SECONDS: float = 15.0  # 单次提交超时时间
    PROCESSOR_SUBMIT_MAX_ATTEMPTS: int = 3  # 提交失败时的最大尝试次数
    PROCESSOR_BACKOFF_INITIAL_SECONDS: float = 1.0  # 指数退避的初始等待
    PROCESSOR_BACKOFF_MAX_SECONDS: float = 10.0  # 指数退避的最长等待
    PROCESSOR_WEBHOOK_SECRET: str | None = None  # Webhook HMAC 签名密钥

    # 内部服务调用（打赏/票务/预约等收入来源、认证回调）
    INTERNAL_API_TOKEN: str = "changethis"

    # 运维：提交后超过该时长仍未终结的提现视为滞留
    STALE_PAYOUT_AFTER_HOURS: int = 72
    # 已预留但停在 requested（提交后写状态失败）的提现，超过该时长视为滞留
    STALE_REQUESTED_AFTER_MINUTES: int = 30

    # Redis（定时任务分布式锁）
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """
        检查敏感配置是否使用了默认值

        本地环境只警告，其他环境直接报错。
        """
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("INTERNAL_API_TOKEN", self.INTERNAL_API_TOKEN)

        return self


# 创建全局配置实例，整个应用共享
settings = Settings()  # type: ignore
