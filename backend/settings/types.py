from __future__ import annotations

from pydantic import BaseModel, Field


class IntervalSettings(BaseModel):
    """
    Minimum spacing between listings requests, per device/network class.
    """

    slowMs: int = Field(default=500, ge=0)
    mobileMs: int = Field(default=300, ge=0)
    desktopMs: int = Field(default=200, ge=0)
    # Viewports at or below this width (logical px) count as mobile.
    mobileMaxWidthPx: int = Field(default=768, ge=0)
    slowEffectiveTypes: list[str] = Field(default_factory=lambda: ["2g", "slow-2g"])


class SignificanceSettings(BaseModel):
    centerDeltaDeg: float = Field(default=0.001, ge=0.0)
    zoomDelta: float = Field(default=1.0, ge=0.0)


class RetrySettings(BaseModel):
    maxRetries: int = Field(default=2, ge=0, le=10)
    # delay = baseDelayMs * attempt  (1s, 2s with defaults)
    baseDelayMs: int = Field(default=1000, ge=0)


class BoundsRetrySettings(BaseModel):
    """
    Re-reading map bounds while the map is still initializing.
    """

    maxAttempts: int = Field(default=3, ge=0)
    baseDelayMs: int = Field(default=100, ge=0)
    stepMs: int = Field(default=50, ge=0)


class BannerSettings(BaseModel):
    networkMessage: str = (
        "Unable to load listings. Please check your connection and try again."
    )
    networkDurationMs: int = Field(default=8000, ge=0)
    serverMessage: str = "Error loading listings. Please try again."
    serverDurationMs: int = Field(default=5000, ge=0)


class EndpointSettings(BaseModel):
    url: str = "http://localhost:8000/wp-admin/admin-ajax.php"
    # Anti-forgery token; opaque to the client.
    security: str = "dev-nonce"
    # None keeps the transport default.
    timeoutS: float | None = Field(default=None, gt=0.0)


class ClientSettings(BaseModel):
    endpoint: EndpointSettings = Field(default_factory=EndpointSettings)
    interval: IntervalSettings = Field(default_factory=IntervalSettings)
    significance: SignificanceSettings = Field(default_factory=SignificanceSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    boundsRetry: BoundsRetrySettings = Field(default_factory=BoundsRetrySettings)
    banner: BannerSettings = Field(default_factory=BannerSettings)
    # Camera used when the map cannot report its own state yet (Boston).
    fallbackCenter: dict[str, float] = Field(
        default_factory=lambda: {"lat": 42.3601, "lon": -71.0589}
    )
    fallbackZoom: int = Field(default=13, ge=0, le=24)
