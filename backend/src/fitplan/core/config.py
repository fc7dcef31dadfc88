from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_ROOT = Path(__file__).resolve().parents[3]
ENV_PATH = BACKEND_ROOT / ".env"

# Load environment variables as early as possible so Settings picks them up.
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "FitPlan API"
    app_version: str = "0.1.0"
    docs_url: Optional[str] = None

    # Remote inference (Workers AI REST API)
    ai_account_id: str = ""
    ai_api_token: str = ""
    ai_base_url: str = "https://api.cloudflare.com/client/v4"
    ai_model_id: str = "@cf/qwen/qwen3-30b-a3b-fp8"

    guidance_max_tokens: int = Field(default=900, gt=0)
    plan_max_tokens: int = Field(default=6000, gt=0)
    guidance_retries: int = Field(default=2, ge=1)

    # Every guidance attempt plus the plan call must fit inside the inference
    # budget, which sits below the host platform's hard request ceiling.
    guidance_timeout_s: float = Field(default=10.0, gt=0)
    plan_timeout_s: float = Field(default=35.0, gt=0)
    inference_budget_s: float = Field(default=55.0, gt=0)

    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    # "loki" also pushes every record to Grafana Loki
    log_backend: Literal["console", "loki"] = "console"
    grafana_endpoint: Optional[str] = None
    grafana_api_key: Optional[str] = None

    metrics_enabled: bool = False
    metrics_backend: Literal["noop", "log"] = "noop"

    @model_validator(mode="after")
    def _check_inference_budget(self) -> "Settings":
        total = self.guidance_timeout_s * self.guidance_retries + self.plan_timeout_s
        if total > self.inference_budget_s:
            raise ValueError(
                f"guidance_timeout_s * guidance_retries + plan_timeout_s ({total:g}s) exceeds "
                f"inference_budget_s ({self.inference_budget_s:g}s)"
            )
        return self

    @model_validator(mode="after")
    def _check_log_backend(self) -> "Settings":
        if self.log_backend == "loki" and not self.grafana_endpoint:
            raise ValueError("log_backend 'loki' requires grafana_endpoint")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
