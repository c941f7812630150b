"""
本文件用于加载项目运行配置：`.env` 与环境变量保存密钥，其余配置读取 `config.yaml`。
主要函数/类:
- `Settings`: 运行时配置模型（支持类型校验与默认值）
- `get_settings`: 获取配置单例（带缓存）
- `get_missing_config_keys`: 计算关键配置缺失项（用于健康检查提示）
- `load_yaml_dict`: 从 YAML 文件读取为字典（不存在则返回空字典）
- `_normalize_yaml_config`: 将 YAML 配置键标准化为大写
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]
CONFIG_PATH = BASE_DIR / "config.yaml"


def load_yaml_dict(file_path: Path) -> Dict[str, Any]:
    if not file_path.exists():
        return {}

    raw_text = file_path.read_text(encoding="utf-8").strip()
    if not raw_text:
        return {}

    data = yaml.safe_load(raw_text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("config.yaml 顶层必须为映射（key-value）结构")
    return data


def _normalize_yaml_config(data: Dict[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for k, v in (data or {}).items():
        if isinstance(k, str):
            normalized[k.upper()] = v
        else:
            normalized[str(k).upper()] = v
    return normalized


class Settings(BaseSettings):
    """
    输入:
    - 环境变量、`.env` 文件与 `config.yaml` 中的配置项

    输出:
    - 统一的运行时配置对象

    作用:
    - 集中管理库存报表服务所需的配置，并提供默认值与类型校验
    """

    APP_NAME: str = "LogiCore"
    VERSION: str = "1.2.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_BUFFER_SIZE: int = 1000
    PORT: int = 8193

    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5
    DB_ECHO: bool = False

    # 主通道（primary key）
    MAIN_AI_API_KEY: Optional[str] = None
    MAIN_AI_BASE_URL: Optional[str] = "https://generativelanguage.googleapis.com/v1beta/openai/"
    MAIN_AI_MODEL: Optional[str] = "gemini-2.0-flash"

    # 备用通道（fallback key），未配置 BASE_URL/MODEL 时沿用主通道
    BACKUP_AI_API_KEY: Optional[str] = None
    BACKUP_AI_BASE_URL: Optional[str] = None
    BACKUP_AI_MODEL: Optional[str] = None

    # 配额与限流
    AI_MAX_REQUESTS_PER_MINUTE: int = 8
    AI_MAX_REQUESTS_PER_HOUR: int = 15
    AI_MIN_CALL_INTERVAL_SECONDS: float = 10.0
    AI_PRE_CALL_DELAY_SECONDS: float = 1.0

    # 主备切换与重试
    AI_MAX_PRIMARY_FAILURES: int = 3
    AI_MAX_ATTEMPTS: int = 2
    AI_RETRY_DELAY_SECONDS: float = 1.0
    AI_REQUEST_TIMEOUT_SECONDS: float = 30.0

    # 生成参数
    AI_TEMPERATURE: float = 0.2
    AI_TOP_P: float = 0.9
    AI_MAX_OUTPUT_TOKENS: int = 2000

    # 报表
    REPORT_CACHE_TTL_SECONDS: int = 300
    REPORTS_DIR: Path = BASE_DIR / "reports"
    BATCH_REPORT_DELAY_SECONDS: float = 5.0
    REPORT_SCHEDULE_ENABLED: bool = False

    ADMIN_PASSWORD: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def yaml_settings():
            return _normalize_yaml_config(load_yaml_dict(CONFIG_PATH))

        return (
            init_settings,
            yaml_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


def get_missing_config_keys(settings: Settings) -> List[str]:
    required_keys = [
        "DATABASE_URL",
        "MAIN_AI_API_KEY",
        "MAIN_AI_MODEL",
    ]

    missing: List[str] = []
    for k in required_keys:
        v = getattr(settings, k, None)
        if v is None:
            missing.append(k)
            continue
        if isinstance(v, str) and not v.strip():
            missing.append(k)
            continue
    if not (settings.ADMIN_PASSWORD or "").strip():
        missing.append("ADMIN_PASSWORD")
    return missing


@lru_cache()
def get_settings() -> Settings:
    """
    输入:
    - 无

    输出:
    - `Settings` 单例实例

    作用:
    - 通过缓存避免重复解析环境变量，提高配置读取性能
    """

    return Settings()
