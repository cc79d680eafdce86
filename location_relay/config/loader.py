# location_relay/config/loader.py
"""
Загрузчик конфигурации сервиса.
Единственный источник истины — config/config.json.
Секретные данные и адреса переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "location_relay"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Настройки HTTP/WebSocket сервера."""
    RELAY_HOST: str = "0.0.0.0"
    RELAY_PORT: int = 8080
    SUBSCRIBE_PATH: str = "/subscribe"
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("SUBSCRIBE_PATH")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        """Путь подписки всегда абсолютный."""
        return v if v.startswith("/") else f"/{v}"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "relay"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RelaySettings(BaseModel):
    """Настройки журнала событий и доставки."""
    STORE_BACKEND: str = "redis"  # redis, memory
    EVENT_RETENTION_MS: int | None = None  # None: журнал не обрезается
    PUSH_EVENT_NAME: str = "driver_location"
    PUSH_TIMEOUT_S: float = 5.0  # предел одной отправки подписчику

    @field_validator("STORE_BACKEND")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Проверяет имя хранилища."""
        backend = v.lower()
        if backend not in ("redis", "memory"):
            raise ValueError(f"Неизвестное хранилище: {v}")
        return backend

    @field_validator("EVENT_RETENTION_MS")
    @classmethod
    def validate_retention(cls, v: int | None) -> int | None:
        """Окно хранения должно быть положительным."""
        if v is not None and v <= 0:
            raise ValueError("EVENT_RETENTION_MS должен быть больше нуля")
        return v

    @field_validator("PUSH_TIMEOUT_S")
    @classmethod
    def validate_push_timeout(cls, v: float) -> float:
        """Таймаут отправки должен быть положительным."""
        if v <= 0:
            raise ValueError("PUSH_TIMEOUT_S должен быть больше нуля")
        return v


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты и адреса переопределяются из переменных окружения.
        """
        config_data = load_config_json()

        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        filtered_data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        return cls(
            system=SystemSettings(
                PROJECT_NAME=filtered_data.get("PROJECT_NAME", "location_relay"),
                VERSION=filtered_data.get("VERSION", "1.0.0"),
                DEBUG=filtered_data.get("DEBUG", False),
                LOG_LEVEL=filtered_data.get("LOG_LEVEL", "INFO"),
                ENVIRONMENT=os.getenv("ENVIRONMENT", filtered_data.get("ENVIRONMENT", "development")),
            ),
            deployment=DeploymentSettings(
                RELAY_HOST=os.getenv("RELAY_HOST", filtered_data.get("RELAY_HOST", "0.0.0.0")),
                RELAY_PORT=int(os.getenv("RELAY_PORT", filtered_data.get("RELAY_PORT", 8080))),
                SUBSCRIBE_PATH=filtered_data.get("SUBSCRIBE_PATH", "/subscribe"),
                CORS_ORIGINS=filtered_data.get("CORS_ORIGINS", ["*"]),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=filtered_data.get("LOG_LEVEL", "INFO"),
                LOG_TO_FILE=filtered_data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=filtered_data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=filtered_data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=filtered_data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=filtered_data.get("LOG_BACKUP_COUNT", 5),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", filtered_data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", filtered_data.get("REDIS_PORT", 6379))),
                REDIS_DB=filtered_data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", filtered_data.get("REDIS_PASSWORD", "")),
                REDIS_NAMESPACE=filtered_data.get("REDIS_NAMESPACE", "relay"),
                REDIS_MAX_CONNECTIONS=filtered_data.get("REDIS_MAX_CONNECTIONS", 50),
            ),
            relay=RelaySettings(
                STORE_BACKEND=os.getenv("STORE_BACKEND", filtered_data.get("STORE_BACKEND", "redis")),
                EVENT_RETENTION_MS=filtered_data.get("EVENT_RETENTION_MS"),
                PUSH_EVENT_NAME=filtered_data.get("PUSH_EVENT_NAME", "driver_location"),
                PUSH_TIMEOUT_S=filtered_data.get("PUSH_TIMEOUT_S", 5.0),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    # Загружаем .env файл
    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
