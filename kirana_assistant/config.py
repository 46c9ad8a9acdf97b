"""
Configuration for the shopping assistant runtime.
Every value comes from the environment; defaults match the storefront UI.
"""
from __future__ import annotations

import os
import uuid

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


class BaseConfig:
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "")

    # Storefront backend
    ASSISTANT_API_URL: str = os.getenv("ASSISTANT_API_URL", "http://localhost:5003").rstrip("/")
    ASSISTANT_API_TOKEN: str = os.getenv("ASSISTANT_API_TOKEN", "")
    BACKEND_TIMEOUT_SECONDS: float = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "15"))

    # UI pacing (milliseconds)
    SEARCH_DEBOUNCE_MS: int = int(os.getenv("SEARCH_DEBOUNCE_MS", "400"))
    SEARCH_MIN_QUERY_LENGTH: int = int(os.getenv("SEARCH_MIN_QUERY_LENGTH", "2"))
    AGENT_VIEWING_DELAY_MS: int = int(os.getenv("AGENT_VIEWING_DELAY_MS", "3000"))
    FEEDBACK_DISMISS_MS: int = int(os.getenv("FEEDBACK_DISMISS_MS", "3000"))

    # Conversation
    SURVEY_AFTER_MESSAGES: int = int(os.getenv("SURVEY_AFTER_MESSAGES", "10"))
    MAX_MESSAGE_LENGTH: int = int(os.getenv("MAX_MESSAGE_LENGTH", "1000"))

    # Feature flags
    USE_RULE_BASED_TRIAGE: bool = _flag("USE_RULE_BASED_TRIAGE")
    NOTIFY_BACKEND_ON_CLEAR: bool = _flag("NOTIFY_BACKEND_ON_CLEAR", "true")
    NOTIFY_BACKEND_ON_ESCALATION_CANCEL: bool = _flag("NOTIFY_BACKEND_ON_ESCALATION_CANCEL", "true")

    # Tab-scoped storage
    SESSION_STORAGE: str = os.getenv("SESSION_STORAGE", "redis").lower()
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB: int = int(os.getenv("REDIS_DB", 0))
    REDIS_DECODE_RESPONSES: bool = True
    TAB_ID: str = os.getenv("TAB_ID") or f"tab_{uuid.uuid4().hex[:12]}"
    TAB_TTL_SECONDS: int = int(os.getenv("TAB_TTL_SECONDS", "86400"))


class DevelopmentConfig(BaseConfig):
    DEBUG: bool = True


class ProductionConfig(BaseConfig):
    DEBUG: bool = False


class TestingConfig(BaseConfig):
    TESTING: bool = True
    SESSION_STORAGE: str = "memory"
    REDIS_DB: int = 15
    NOTIFY_BACKEND_ON_CLEAR: bool = False


def get_config(config_name: str | None = None) -> BaseConfig:
    """Get configuration instance directly - no complex manager."""
    env = (config_name or os.getenv("APP_ENV", os.getenv("FLASK_ENV", "development"))).lower()
    mapping = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = mapping.get(env, DevelopmentConfig)
    cfg = config_class()

    import logging
    log = logging.getLogger(__name__)
    if not hasattr(get_config, '_logged_startup'):
        log.info(f"⚙️ CONFIG_STARTUP | env={env} | config_class={config_class.__name__}")
        log.info(f"📡 BACKEND_CONFIG | url={cfg.ASSISTANT_API_URL} | timeout={cfg.BACKEND_TIMEOUT_SECONDS}s | auth={bool(cfg.ASSISTANT_API_TOKEN)}")
        log.info(f"⏱️ PACING_CONFIG | debounce_ms={cfg.SEARCH_DEBOUNCE_MS} | agent_viewing_ms={cfg.AGENT_VIEWING_DELAY_MS} | feedback_dismiss_ms={cfg.FEEDBACK_DISMISS_MS}")
        log.info(f"⚙️ FEATURE_FLAGS | USE_RULE_BASED_TRIAGE={cfg.USE_RULE_BASED_TRIAGE} | NOTIFY_BACKEND_ON_CLEAR={cfg.NOTIFY_BACKEND_ON_CLEAR} | NOTIFY_BACKEND_ON_ESCALATION_CANCEL={cfg.NOTIFY_BACKEND_ON_ESCALATION_CANCEL}")
        log.info(f"💾 STORAGE_CONFIG | backend={cfg.SESSION_STORAGE} | host={cfg.REDIS_HOST} | port={cfg.REDIS_PORT} | db={cfg.REDIS_DB} | tab={cfg.TAB_ID} | ttl={cfg.TAB_TTL_SECONDS}s")
        get_config._logged_startup = True

    return cfg
