"""Глобальные настройки реферального движка AQUA.

Настройки разделены по доменам (база, кеш, реферальная программа, выплаты,
безопасность, веб), вся конфигурация загружается из переменных окружения через
Pydantic Settings. Вложенные поля задаются через ``__``, например
``REFERRAL__SHARE_PERCENT=40``.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    Field,
    PositiveFloat,
    SecretStr,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent
ACCESSIBLE_ENV_FILE = BASE_DIR / "config" / "runtime.env"
DEFAULT_ENV_FILE = BASE_DIR / ".env"
ENV_FILE = ACCESSIBLE_ENV_FILE if ACCESSIBLE_ENV_FILE.exists() else DEFAULT_ENV_FILE

DEFAULT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class DatabaseSettings(BaseModel):
    """SQLModel + aiosqlite (по умолчанию) и готовность к Postgres."""

    dsn: str = Field(
        "sqlite+aiosqlite:///./database/referrals.db",
        description="Строка подключения SQLAlchemy/SQLModel",
    )
    echo: bool = False


class CacheSettings(BaseModel):
    """Настройки кешей (aiocache поддерживает memory / redis).

    Через кеш работает блокировка выплат: при нескольких инстансах API нужен redis.
    """

    backend: Literal["memory", "redis"] = "memory"
    ttl_seconds: int = 30
    redis_dsn: str | None = None


class ReferralSettings(BaseModel):
    """Реферальная программа: доля комиссии, порог и частота выплат."""

    enabled: bool = Field(False, description="Главный выключатель программы")
    share_percent: int = Field(50, ge=0, le=100, description="Доля комиссии рефереру, %")
    min_claim_amount: Decimal = Field(Decimal("0.01"), gt=0, description="Минимум для вывода, SOL")
    claim_cooldown_seconds: int = Field(3600, ge=0)
    max_earning_amount: Decimal = Field(
        Decimal("1000"), gt=0, description="Потолок одного начисления (защита от битых комиссий)"
    )
    code_length: int = Field(8, ge=4, le=32)
    code_alphabet: str = Field(DEFAULT_CODE_ALPHABET, min_length=2)
    code_max_attempts: int = Field(10, ge=1)
    claim_lock_ttl_sec: int = Field(120, ge=1, description="Аренда блокировки выплаты")

    @field_validator("code_alphabet")
    @classmethod
    def _unique_symbols(cls, value: str) -> str:
        if len(set(value)) != len(value):
            raise ValueError("code_alphabet содержит повторяющиеся символы")
        return value


class PayoutSettings(BaseModel):
    """Исполнитель выплат: внутренний сервис переводов или dry-run."""

    backend: Literal["http", "dry_run"] = "dry_run"
    transfer_url: AnyHttpUrl | None = Field(
        None, description="Эндпоинт внутреннего сервиса переводов SOL"
    )
    payout_wallet: str | None = Field(None, description="Кошелёк платформы для выплат")
    api_key: SecretStr | None = None
    timeout_sec: PositiveFloat = 30.0

    @field_validator("transfer_url", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SecuritySettings(BaseModel):
    """JWT для пользовательских запросов и ключ внутренних вызовов."""

    jwt_secret: SecretStr = Field(..., description="Секрет для подписания JWT")
    jwt_algorithm: str = "HS256"
    jwt_ttl_minutes: int = 60
    internal_api_key: SecretStr | None = Field(
        None, description="Ключ для начислений из роутов сбора комиссий"
    )


class WebSettings(BaseModel):
    """HTTP API."""

    host: str = "0.0.0.0"
    port: int = 8080
    public_url: str = "https://aqua-launchpad.app"


class AppSettings(BaseSettings):
    """Главный контейнер настроек."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool = False
    database: DatabaseSettings = DatabaseSettings()
    cache: CacheSettings = CacheSettings()
    referral: ReferralSettings = ReferralSettings()
    payout: PayoutSettings = PayoutSettings()
    security: SecuritySettings
    web: WebSettings = WebSettings()

    @property
    def is_production(self) -> bool:
        """True, если сервис запущен в продовой среде."""

        return self.environment == "prod"


# Ленивый синглтон (избегаем глобальных переменных в модулях).
_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Возвращает единый экземпляр настроек.

    Значения кэшируются, поэтому .env читается ровно один раз за процесс.
    """

    global _settings
    if _settings is None:
        _settings = AppSettings()  # type: ignore[call-arg]
    return _settings


__all__ = [
    "AppSettings",
    "CacheSettings",
    "DatabaseSettings",
    "PayoutSettings",
    "ReferralSettings",
    "SecuritySettings",
    "WebSettings",
    "get_settings",
]
