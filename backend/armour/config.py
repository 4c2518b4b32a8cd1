from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./data/armour.db"

    # App settings
    app_name: str = "Creator Armour Protection"
    debug: bool = False
    environment: str = "production"  # "development" exposes error details

    # Auth
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    # LLM
    llm_provider: str = "openai"  # openai, anthropic, groq, ollama
    llm_model: str = ""
    llm_api_key: str = ""
    llm_base_url: str = ""

    # AI job handler (enqueue + poll)
    ai_handler_url: str = "http://localhost:8000/api/ai"
    job_worker_enabled: bool = False
    job_worker_interval_seconds: int = 5

    # Storage
    storage_dir: str = "./data/storage"
    public_base_url: str = "http://localhost:8000"
    storage_signing_secret: str = "change-me-too"
    allowed_storage_origins: List[str] = []

    # Contract analysis limits
    max_contract_bytes: int = 15 * 1024 * 1024
    contract_download_timeout: float = 20.0
    analysis_max_chars: int = 12000

    # Mail sender shown in negotiation emails
    default_from_email: Optional[str] = "noreply@creatorarmour.com"

    class Config:
        env_file = ".env"
        extra = "allow"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


settings = Settings()
