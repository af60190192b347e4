"""Dealflow configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class DealflowSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///dealflow.db"
    echo_sql: bool = False
    app_title: str = "Dealflow Pipelines"
    log_level: str = "INFO"

    tenant_auth_required: bool = False
    tenant_access_tokens: str = ""
    tenant_token_header: str = "X-Location-Token"

    # Client side (board / form controllers, CLI)
    api_base_url: str = "http://localhost:8020"
    board_page_size: int = 20
    board_max_page_size: int = 100
    load_timeout_seconds: float = 15.0
    move_timeout_seconds: float = 15.0
    submit_timeout_seconds: float = 30.0

    # Pipelines whose name matches get the order subform merged into custom fields
    order_variant_pipeline_name: str = "Spot"
    # "any", or comma-separated "From>To" stage-name pairs
    stage_transitions: str = "any"

    model_config = {"env_prefix": "DEALFLOW_", "env_file": ".env", "extra": "ignore"}

    @property
    def tenant_access_tokens_map(self) -> dict[str, str]:
        """Parse comma-separated slug:token pairs."""
        mapping: dict[str, str] = {}
        if not self.tenant_access_tokens.strip():
            return mapping

        for item in self.tenant_access_tokens.split(","):
            pair = item.strip()
            if not pair or ":" not in pair:
                continue
            slug, token = pair.split(":", 1)
            slug = slug.strip()
            token = token.strip()
            if slug and token:
                mapping[slug] = token
        return mapping

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = DealflowSettings()
