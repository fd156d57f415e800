from __future__ import annotations

from dataclasses import dataclass

from settings.types import IntervalSettings


@dataclass(frozen=True)
class NetworkEnvironment:
    """
    What the host knows about the device and its connection.

    `effective_type` follows the Network Information API vocabulary
    ("slow-2g", "2g", "3g", "4g"); None when unknown.
    """

    viewport_width: int
    effective_type: str | None = None
    save_data: bool = False


def adaptive_interval_ms(
    env: NetworkEnvironment, settings: IntervalSettings | None = None
) -> int:
    """
    Minimum spacing between listings requests.

    Slow or data-saving connections get the longest interval, then narrow (mobile)
    viewports, then everything else.
    """
    s = settings or IntervalSettings()
    effective = (env.effective_type or "").strip().lower()
    slow_types = {t.strip().lower() for t in s.slowEffectiveTypes}
    if env.save_data or (effective and effective in slow_types):
        return int(s.slowMs)
    if int(env.viewport_width) <= s.mobileMaxWidthPx:
        return int(s.mobileMs)
    return int(s.desktopMs)


def is_mobile_width(width: int, settings: IntervalSettings | None = None) -> bool:
    s = settings or IntervalSettings()
    return int(width) <= s.mobileMaxWidthPx
