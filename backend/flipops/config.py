from __future__ import annotations

from dataclasses import dataclass, field

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./flipops.db"
    service_version: str = "2026-10-01.v1"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth boundary ----
    auth_mode: str = "dev"  # dev|api_key
    flipops_api_key: str | None = None
    dev_header_user_id: str = "X-User-Id"
    dev_default_user_id: str = "dev-user"

    # ---- Panels ----
    panel_cache_max_age_seconds: int = 15
    panel_recent_events_limit: int = 12
    panel_planned_milestones: int = 6
    panel_bottleneck_threshold_hours: float = 24.0
    panel_violation_window_days: int = 7

    # ---- Deal classification ----
    active_window_days: int = 30
    stalled_g1_hours: float = 72.0
    stalled_g2_hours: float = 120.0
    stalled_g3_hours: float = 48.0
    stalled_g4_hours: float = 24.0
    stalled_list_limit: int = 100
    sync_all_limit: int = 50

    # ---- Budget guardrails ----
    variance_tier1_pct: float = 3.0
    variance_tier2_pct: float = 7.0
    contingency_target_pct: float = 12.0
    headroom_warning_pct: float = 5.0
    budget_variance_alert_pct: float = 10.0
    bid_spread_alert_pct: float = 15.0

    # ---- Estimator defaults ----
    default_region: str = "Miami"
    default_grade: str = "Standard"

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")
            if not self.flipops_api_key:
                raise ValueError("SECURITY: flipops_api_key must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()


@dataclass(frozen=True)
class GuardrailConfig:
    """
    Explicit knobs for the read-side core (gates, budget, panels, classifier).

    Built once from Settings at the HTTP edge and passed down; nothing under
    domain/ or services/ reads the environment.
    """

    stalled_hours: dict[str, float] = field(
        default_factory=lambda: {"G1": 72.0, "G2": 120.0, "G3": 48.0, "G4": 24.0}
    )
    active_window_days: int = 30
    variance_tier1_pct: float = 3.0
    variance_tier2_pct: float = 7.0
    contingency_target_pct: float = 12.0
    headroom_warning_pct: float = 5.0
    variance_alert_pct: float = 10.0
    bid_spread_alert_pct: float = 15.0
    planned_milestones: int = 6
    bottleneck_threshold_hours: float = 24.0
    recent_events_limit: int = 12
    violation_window_days: int = 7
    default_region: str = "Miami"
    default_grade: str = "Standard"


def guardrail_config(s: Settings | None = None) -> GuardrailConfig:
    s = s or settings
    return GuardrailConfig(
        stalled_hours={
            "G1": float(s.stalled_g1_hours),
            "G2": float(s.stalled_g2_hours),
            "G3": float(s.stalled_g3_hours),
            "G4": float(s.stalled_g4_hours),
        },
        active_window_days=int(s.active_window_days),
        variance_tier1_pct=float(s.variance_tier1_pct),
        variance_tier2_pct=float(s.variance_tier2_pct),
        contingency_target_pct=float(s.contingency_target_pct),
        headroom_warning_pct=float(s.headroom_warning_pct),
        variance_alert_pct=float(s.budget_variance_alert_pct),
        bid_spread_alert_pct=float(s.bid_spread_alert_pct),
        planned_milestones=int(s.panel_planned_milestones),
        bottleneck_threshold_hours=float(s.panel_bottleneck_threshold_hours),
        recent_events_limit=int(s.panel_recent_events_limit),
        violation_window_days=int(s.panel_violation_window_days),
        default_region=s.default_region,
        default_grade=s.default_grade,
    )
