from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "env_prefix": "",
        "case_sensitive": False,
    }

    # Gemini
    google_ai_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    # Embedding classifier
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    use_mock_embedder: bool = False
    fallback_parent_category: str = "Pantry & Dry Goods"

    # Classifier worker timeouts (seconds)
    classify_timeout_seconds: float = 30.0
    batch_timeout_seconds: float = 60.0
    initialize_timeout_seconds: float = 120.0
    worker_start_timeout_seconds: float = 60.0

    # Sharding
    shard_size: int = 20
    shard_failure_policy: Literal["abort", "partial"] = "abort"

    # App
    environment: str = "development"
    log_level: str = "INFO"
    log_file: str = ""


settings = Settings()
