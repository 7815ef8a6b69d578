# src/assocpay/core/config.py
from dotenv import load_dotenv
load_dotenv(".env")
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field
from typing import Optional

class Settings(BaseSettings):
    # model_config 会自动加载 .env 文件
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # 应用配置
    APP_ENV: str = "production"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_NAME: str = "assocpay"

    @computed_field
    @property
    def DATABASE_URL(self) -> str:
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_DB: int = 0

    @computed_field
    @property
    def REDIS_URL(self) -> str:
        password = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{password}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # JWT
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # 管理端接口 (手动对账、轮询状态) 使用的 Api-Key
    ADMIN_API_KEY: Optional[str] = None

    # --- Stripe ---
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    STRIPE_TIMEOUT_SECONDS: float = Field(10.0, description="Upper bound for a single gateway call, retries included.")
    STRIPE_MAX_NETWORK_RETRIES: int = 3
    STRIPE_SUCCESS_URL: str = "http://localhost:3000/payment/success?session_id={CHECKOUT_SESSION_ID}"
    STRIPE_CANCEL_URL: str = "http://localhost:3000/payment/cancel"
    STRIPE_DEFAULT_CURRENCY: str = "HKD"

    # --- Payment polling (webhook 的兜底对账) ---
    PAYMENT_POLLING_ENABLED: bool = True
    PAYMENT_POLLING_INTERVAL_SECONDS: float = 30.0
    PAYMENT_POLLING_LOOKBACK_HOURS: int = Field(24, description="PENDING orders older than this are treated as abandoned carts.")
    PAYMENT_POLLING_BATCH_SIZE: int = 100
    PAYMENT_ORPHAN_GRACE_MINUTES: int = Field(60, description="A PENDING order without a checkout session is failed after this long.")

    WEBHOOK_DEDUP_TTL_SECONDS: int = 86400

    # --- Transactional mail ---
    MAIL_API_URL: Optional[str] = None
    MAIL_API_KEY: Optional[str] = None
    MAIL_FROM_ADDRESS: str = "no-reply@example.com"
    MAIL_TIMEOUT_SECONDS: float = 10.0

settings = Settings()
