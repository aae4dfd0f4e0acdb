# =============================================================================
# core/models/pwa.py - PWA Schemas
# =============================================================================
# Payloads for the PWA endpoints:
# - TelemetryPayload: POST /api/pwa/telemetry (strict, unknown keys rejected)
# - InstallDecisionRequest / InstallEventRequest: install banner state
# - SloAlertTriggerRequest: POST /api/admin/pwa/slo-alerts/trigger
# =============================================================================

from typing import Annotated, Literal

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    field_validator,
)

from .common import CamelModel, StrictCamelModel

TelemetryMetaValue = Annotated[str, StringConstraints(max_length=160)] | float | bool | None

_url_adapter = TypeAdapter(AnyUrl)


# =============================================================================
# Telemetry ingest
# =============================================================================

class TelemetryEvent(StrictCamelModel):
    """
    One web-vital or lifecycle event reported by the browser.

    Example:
        {"type": "web_vital", "name": "lcp", "ts": 1718000000000,
         "path": "/products/123", "value": 2310, "unit": "ms", "rating": "good"}
    """

    type: Literal["web_vital", "pwa_lifecycle"]
    name: str = Field(..., min_length=1, max_length=64)
    ts: int = Field(..., ge=0, description="Event time in epoch milliseconds")
    path: str = Field(..., min_length=1, max_length=180)
    value: float | None = Field(default=None, allow_inf_nan=False)
    unit: Literal["ms", "score", "count"] | None = None
    rating: Literal["good", "needs-improvement", "poor"] | None = None
    id: str | None = Field(default=None, max_length=96)
    meta: dict[Annotated[str, StringConstraints(min_length=1, max_length=48)], TelemetryMetaValue] | None = None


class TelemetryContext(StrictCamelModel):
    href: str | None = Field(default=None, max_length=300)
    ua: str | None = Field(default=None, max_length=260)
    display_mode: Literal["standalone", "browser", "unknown"]
    language: str | None = Field(default=None, max_length=24)
    tz_offset: int | None = Field(default=None, ge=-840, le=840)

    @field_validator("href")
    @classmethod
    def _href_is_url(cls, value: str | None) -> str | None:
        if value is not None:
            _url_adapter.validate_python(value)
        return value


class TelemetryPayload(StrictCamelModel):
    events: list[TelemetryEvent] = Field(..., min_length=1, max_length=20)
    context: TelemetryContext | None = None


# =============================================================================
# Install banner
# =============================================================================

class InstallQuery(BaseModel):
    """Debug/override query parameters forwarded from the page URL."""

    model_config = ConfigDict(extra="ignore")

    pwa_install_variant: str | None = None
    pwa_install_debug_reset: str | None = None
    pwa_rollout: str | None = None


class InstallDecisionRequest(CamelModel):
    visitor_id: str = Field(..., min_length=1, max_length=128)
    session_id: str = Field(..., min_length=1, max_length=128)
    pathname: str = Field(default="/", max_length=512)
    scroll_y: float = Field(default=0, ge=0)
    dwell_ms: float = Field(default=0, ge=0)
    standalone: bool = False
    install_prompt_available: bool = False
    ios_device: bool = False
    user_agent: str | None = Field(default=None, max_length=512)
    query: InstallQuery = Field(default_factory=InstallQuery)


class InstallEventRequest(CamelModel):
    visitor_id: str = Field(..., min_length=1, max_length=128)
    session_id: str = Field(..., min_length=1, max_length=128)
    action: Literal["cta_clicked", "guide_opened", "minimized", "accepted", "dismissed", "installed"]
    pathname: str | None = Field(default=None, max_length=512)
    mode: Literal["prompt", "ios_manual"] | None = None
    reason: str | None = Field(default=None, max_length=64)
    source: str | None = Field(default=None, max_length=64)


# =============================================================================
# SLO alerts
# =============================================================================

class SloAlertTriggerRequest(StrictCamelModel):
    window_minutes: int | None = Field(default=None, ge=5, le=24 * 60)
    display_mode: Literal["all", "browser", "standalone", "unknown"] | None = None
    path_prefix: Annotated[str, StringConstraints(strip_whitespace=True, max_length=180)] | None = None
    force: bool = False
