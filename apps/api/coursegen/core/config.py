from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    env: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    # 공급자 선택(기본: openai). gemini, anthropic 으로 전환 가능
    ai_provider: Literal["openai", "gemini", "anthropic"] = "openai"
    ai_max_concurrency: int = 4
    ai_backpressure_acquire_timeout_ms: int = 30000
    ai_retries: int = 1

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"

    # 키 이름 하위호환: GEMINI_API_KEY 또는 GOOGLE_GENERATIVE_AI_API_KEY 둘 다 허용
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"),
    )
    gemini_model: str = "gemini-2.0-flash"

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    anthropic_base_url: str = "https://api.anthropic.com/v1"

    topic_detection_timeout_sec: float = 20
    topic_detection_max_tokens: int = 3000
    large_set_threshold: int = 100
    topic_batch_size: int = 40
    topic_batch_delay_sec: float = 1.0
    min_topics: int = 5
    max_topics: int = 12
    max_concepts: int = 5

    lesson_generation_timeout_sec: float = 30
    lesson_max_tokens: int = 2000
    lesson_window_size: int = 3
    lesson_window_delay_sec: float = 1.0
    lesson_min_words: int = 100
    lesson_max_words: int = 600

    leakage_threshold: float = 0.30
    leakage_policy: Literal["log", "sanitize", "reject"] = "log"

    regen_window_minutes: int = 10
    database_url: str = "sqlite:///./coursegen.db"

    model_config = SettingsConfigDict(env_file="../../.env", extra="ignore")

    def max_run_duration_sec(self, question_count: int, topic_count: int | None = None) -> float:
        """Upper bound for one run: per-call timeouts, backoff waits and fixed delays."""
        attempts = max(0, self.ai_retries) + 1
        backoff = float(sum(2**attempt for attempt in range(attempts - 1)))

        if question_count > self.large_set_threshold:
            batch_size = max(1, self.topic_batch_size)
            batches = (question_count + batch_size - 1) // batch_size
        else:
            batches = 1
        detection = batches * (attempts * self.topic_detection_timeout_sec + backoff)
        detection += max(0, batches - 1) * self.topic_batch_delay_sec

        topics = topic_count if topic_count is not None else self.max_topics
        window = max(1, self.lesson_window_size)
        windows = (topics + window - 1) // window
        lessons = windows * (attempts * self.lesson_generation_timeout_sec + backoff)
        lessons += max(0, windows - 1) * self.lesson_window_delay_sec

        return detection + lessons


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
