import pytest
from pydantic import ValidationError

from fitplan.core.config import Settings


def test_defaults_fit_inside_inference_budget():
    settings = Settings(_env_file=None)
    assert settings.guidance_timeout_s + settings.plan_timeout_s <= settings.inference_budget_s
    assert settings.guidance_retries == 2
    assert settings.docs_url is None


def test_stage_timeouts_exceeding_budget_are_rejected():
    with pytest.raises(ValidationError, match="exceeds inference_budget_s"):
        Settings(_env_file=None, guidance_timeout_s=30, plan_timeout_s=30, inference_budget_s=55)


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("AI_MODEL_ID", "@cf/meta/llama-3.1-8b-instruct")
    monkeypatch.setenv("METRICS_BACKEND", "log")
    settings = Settings(_env_file=None)
    assert settings.ai_model_id == "@cf/meta/llama-3.1-8b-instruct"
    assert settings.metrics_backend == "log"


def test_retries_must_allow_one_attempt():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, guidance_retries=0)


def test_every_guidance_attempt_counts_against_budget():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, guidance_timeout_s=20, guidance_retries=2, plan_timeout_s=35)
    Settings(_env_file=None, guidance_timeout_s=20, guidance_retries=1, plan_timeout_s=35)


def test_loki_backend_requires_endpoint():
    with pytest.raises(ValidationError, match="grafana_endpoint"):
        Settings(_env_file=None, log_backend="loki")
    settings = Settings(_env_file=None, log_backend="loki", grafana_endpoint="https://logs.example.test/push")
    assert settings.grafana_api_key is None
