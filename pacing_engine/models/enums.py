"""
Enumeration definitions for the pacing engine.

All enums inherit from both `str` and `Enum` so they serialise as plain strings
in pydantic models and API responses.
"""

from enum import Enum


class PaceStatus(str, Enum):
    """
    Pacing verdict of actual delivery against expected-to-date.

    ratio = actual / expected * 100
    - UNDER: ratio < 90
    - ON: 90 <= ratio <= 110, or nothing expected yet
    - OVER: ratio > 110
    """
    UNDER = "UNDER"
    ON = "ON"
    OVER = "OVER"


class PacingMetric(str, Enum):
    """Which planned quantity a burst/expected computation prorates."""
    SPEND = "spend"
    DELIVERABLE = "deliverable"


class ChannelGroup(str, Enum):
    """Media plan channel group a line item was booked under."""
    SOCIAL = "social"
    PROG_DISPLAY = "prog_display"
    PROG_VIDEO = "prog_video"
    SEARCH = "search"


class DeliveryChannel(str, Enum):
    """
    Canonical delivery channel tags.

    Warehouse labels vary by vendor ("Meta Ads", "facebook/meta",
    "Programmatic - Display", ...); the delivery gateway maps them onto this
    fixed set and drops everything else. Search rows come from the search fact
    table and always carry SEARCH.
    """
    META = "meta"
    TIKTOK = "tiktok"
    PROGRAMMATIC_DISPLAY = "programmatic-display"
    PROGRAMMATIC_VIDEO = "programmatic-video"
    SEARCH = "search"


class DeliverableMetric(str, Enum):
    """Delivery column that counts as a line item's deliverable."""
    IMPRESSIONS = "IMPRESSIONS"
    CLICKS = "CLICKS"
    RESULTS = "RESULTS"
    VIDEO_3S_VIEWS = "VIDEO_3S_VIEWS"


class DateWindowPreset(str, Enum):
    """
    Named delivery windows. All end at business-yesterday.

    CAMPAIGN_DATES spans the booked burst dates (end capped at yesterday).
    """
    LAST_30 = "LAST_30"
    LAST_60 = "LAST_60"
    LAST_90 = "LAST_90"
    CAMPAIGN_DATES = "CAMPAIGN_DATES"


class DeliveryWarning(str, Enum):
    """Soft conditions reported alongside a successful delivery fetch."""
    TRUNCATED = "truncated"
    ZERO_ROWS = "zero_rows"
    IDS_CAPPED = "ids_capped"
    UNKNOWN_CHANNELS = "unknown_channels"
