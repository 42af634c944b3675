"""
应用配置模块

使用 Pydantic Settings 管理所有环境变量和配置。
配置从项目根目录的 .env 文件读取，支持类型验证和默认值。

关键概念：
- BaseSettings: Pydantic 的配置基类，自动从环境变量读取
- computed_field: 计算字段，根据其他字段动态生成
- model_validator: 模型验证器，用于自定义验证逻辑
"""
import secrets  # 用于生成安全的随机字符串
import warnings  # 用于发出警告
from typing import Annotated, Any, Literal  # 类型注解工具

from pydantic import (
    AnyUrl,  # URL 类型验证
    BeforeValidator,  # 字段验证前的转换器
    HttpUrl,  # HTTP URL 类型验证
    PostgresDsn,  # PostgreSQL 连接字符串验证
    computed_field,  # 计算字段装饰器
    model_validator,  # 模型验证器装饰器
)
from pydantic_settings import BaseSettings, SettingsConfigDict  # 配置管理
from typing_extensions import Self  # 用于类型注解中引用自身类型


def parse_cors(v: Any) -> list[str] | str:
    """
    解析 CORS 配置值

    支持两种格式：
    1. 逗号分隔的字符串："http://localhost:3000,http://localhost:3001"
    2. 列表格式：["http://localhost:3000", "http://localhost:3001"]

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
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7  # JWT token 过期天数
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"  # 日志级别

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        """计算字段：获取所有 CORS 允许的源（去除尾部斜杠）"""
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str = "Storefront"
    SENTRY_DSN: HttpUrl | None = None

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""

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

    # 邮件通知配置（HTTP 邮件 API，如 Resend）
    EMAIL_MOCK: bool = True  # 是否使用模拟模式（只记录日志，不真正发送）
    EMAIL_API_URL: str = "https://api.resend.com/emails"  # 邮件 API 地址
    EMAIL_API_KEY: str | None = None  # 邮件 API 密钥
    EMAIL_TIMEOUT_SECONDS: float = 10.0  # 单次请求超时（秒）
    EMAIL_MAX_ATTEMPTS: int = 3  # 传输错误时的最大尝试次数
    EMAILS_FROM_EMAIL: str = "noreply@example.com"  # 发件人邮箱
    EMAILS_FROM_NAME: str | None = None  # 发件人名称
    SITE_URL: str = "http://localhost:3000"  # 前端站点地址（用于邮件中的链接）

    # 银行卡支付（Stripe）配置
    STRIPE_MOCK: bool = True  # 是否使用模拟模式（本地开发时）
    STRIPE_API_KEY: str | None = None  # Stripe Secret Key
    STRIPE_WEBHOOK_SECRET: str | None = None  # Webhook 签名密钥（whsec_...）
    STRIPE_SIGNATURE_TOLERANCE_SECONDS: int = 300  # 签名时间戳容差（秒）

    # 托管购物车（Foxy / Ecwid）Webhook 共享密钥
    FOXY_WEBHOOK_SECRET: str | None = None
    ECWID_WEBHOOK_SECRET: str | None = None

    # 结账配置
    DEFAULT_CURRENCY: str = "USD"  # 默认货币
    DEFAULT_SHIPPING_AMOUNT: int = 0  # 默认运费（最小货币单位）

    # 组合优惠（BUNDLE_DEAL）金额计算规则
    BUNDLE_PRICING_RULE: Literal["eligibility_only", "cheapest_free", "percentage"] = (
        "cheapest_free"
    )
    BUNDLE_FREE_ITEMS: int = 1  # cheapest_free: 免费的最便宜商品数量
    BUNDLE_PERCENTAGE: int = 10  # percentage: 满足条件后的折扣百分比

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """
        检查敏感配置是否使用了默认值

        如果配置项使用了默认值 "changethis"，在本地环境会发出警告，
        在生产环境会抛出错误，强制修改。

        Raises:
            ValueError: 在非本地环境使用默认值时
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
        """模型验证器：确保敏感配置不使用默认值"""
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("STRIPE_WEBHOOK_SECRET", self.STRIPE_WEBHOOK_SECRET)
        self._check_default_secret("FOXY_WEBHOOK_SECRET", self.FOXY_WEBHOOK_SECRET)
        self._check_default_secret("ECWID_WEBHOOK_SECRET", self.ECWID_WEBHOOK_SECRET)

        return self


# 创建全局配置实例，整个应用共享
settings = Settings()  # type: ignore
