from __future__ import annotations
from pydantic_settings import BaseSettings
from pydantic import Field

DAY_SEC = 24 * 60 * 60

class Settings(BaseSettings):
    # persistence
    store_backend: str = Field("file", alias="POOL_STORE_BACKEND")  # file|sql|memory
    store_path: str = Field("./data/candidate_pool.json", alias="POOL_STORE_PATH")
    database_url: str = Field("sqlite:///./data/candidate_pool.db", alias="POOL_DATABASE_URL")
    candidate_config_path: str = Field("./config/candidates.yaml", alias="CANDIDATE_CONFIG_PATH")

    # discovery / generation timeouts
    discovery_url: str = Field("https://huggingface.co/api/models", alias="DISCOVERY_URL")
    discovery_timeout_sec: float = Field(5.0, alias="DISCOVERY_TIMEOUT_SEC")
    attempt_timeout_sec: float = Field(30.0, alias="ATTEMPT_TIMEOUT_SEC")

    # scoring
    cache_duration_sec: float = Field(30 * DAY_SEC, alias="POOL_CACHE_DURATION_SEC")
    max_failures: int = Field(3, ge=1, alias="POOL_MAX_FAILURES")
    score_decay: float = Field(0.95, gt=0.0, le=1.0, alias="POOL_SCORE_DECAY")
    neutral_score: float = Field(0.5, ge=0.0, le=1.0, alias="POOL_NEUTRAL_SCORE")
    success_delta: float = Field(0.1, ge=0.0, alias="POOL_SUCCESS_DELTA")
    failure_delta: float = Field(0.2, ge=0.0, alias="POOL_FAILURE_DELTA")
    max_recency_bonus: float = Field(0.3, ge=0.0, alias="POOL_MAX_RECENCY_BONUS")
    recency_slope: float = Field(0.01, ge=0.0, alias="POOL_RECENCY_SLOPE")  # per day
    low_score_threshold: float = Field(0.1, alias="POOL_LOW_SCORE_THRESHOLD")
    priority_floor: float = Field(1e-6, gt=0.0, alias="POOL_PRIORITY_FLOOR")

    # external scheduler helper
    exhaustion_retry_delay_sec: float = Field(300.0, ge=0.0, alias="EXHAUSTION_RETRY_DELAY_SEC")
    exhaustion_max_rounds: int = Field(3, ge=0, alias="EXHAUSTION_MAX_ROUNDS")

    # ops
    metrics_public: bool = Field(False, alias="METRICS_PUBLIC")

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

settings = Settings()
