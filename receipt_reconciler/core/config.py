from pydantic_settings import BaseSettings
from typing import Optional, Dict, List


class Settings(BaseSettings):
    database_url: str = "sqlite:///./receipt_reconciler.db"
    log_level: str = "INFO"
    log_json: bool = False

    # AI extraction pass (OpenAI-compatible chat endpoint, Mistral by default)
    ai_enabled: bool = True
    extraction_api_key: Optional[str] = None
    extraction_base_url: str = "https://api.mistral.ai/v1"
    extraction_model: str = "mistral-small-latest"
    extraction_fallback_model: str = "mistral-large-latest"
    extraction_max_retries: int = 2

    # OCR providers
    ocr_default_provider: str = "claude-vision"
    ocr_request_timeout: float = 60.0
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_endpoint: str = "https://api.anthropic.com/v1/messages"
    mindee_api_key: Optional[str] = None
    mindee_endpoint: str = "https://api.mindee.net/v1/products/mindee/invoices/v4/predict"
    google_documentai_access_token: Optional[str] = None
    google_project_id: Optional[str] = None
    google_location: str = "eu"
    google_processor_id: Optional[str] = None
    mistral_api_key: Optional[str] = None
    mistral_ocr_endpoint: str = "https://api.mistral.ai/v1/ocr"
    mistral_ocr_model: str = "mistral-ocr-latest"

    # Quotas (None means uncapped)
    provider_monthly_limits: Dict[str, Optional[int]] = {
        "claude-vision": None,
        "mindee": 250,
        "google-document-ai": 1000,
        "mistral": None,
    }
    plan_metered_providers: List[str] = ["claude-vision"]
    plan_monthly_quotas: Dict[str, int] = {
        "FREE": 5,
        "FREELANCE": 50,
        "TPE": 200,
        "ENTREPRISE": 1000,
        "UNLIMITED": 999999,
    }
    usage_history_size: int = 100
    usage_retention_months: int = 6
    plan_cache_ttl_seconds: int = 300

    # Result cache
    ocr_cache_ttl_days: int = 30

    # Transaction matcher
    match_threshold: int = 40
    match_date_window_days: int = 3
    match_fallback_days: int = 30
    match_amount_tolerance_ratio: float = 0.01
    match_amount_tolerance_min: float = 0.50

    # Receipt storage
    storage_dir: str = "./receipts"
    storage_public_url: str = "http://localhost:8000/receipts"

    # Best-effort background work
    background_workers: int = 4
    background_inline: bool = False
    background_max_pending: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
