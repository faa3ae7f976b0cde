"""
Package initialization for pacing engine models.

Re-exports the enums and pydantic schemas so callers can import them from
pacing_engine.models directly.
"""

from pacing_engine.models.enums import (
    PaceStatus,
    PacingMetric,
    ChannelGroup,
    DeliveryChannel,
    DeliverableMetric,
    DateWindowPreset,
    DeliveryWarning,
)

from pacing_engine.models.schemas import (
    # Planning IR
    Burst,
    LineItemSchedule,
    MonthBucket,
    CampaignDeliverySchedule,
    ExpectedToDate,
    ExpectedDay,
    # Delivery
    DateWindow,
    DeliveryRow,
    DeliveryTotals,
    DailyDeliveryTotal,
    DeliveryFetchResult,
    PortfolioDelivery,
    # Pacing
    PacingSeriesPoint,
    PacingResult,
    CampaignSummary,
    ClientSummary,
    PortfolioTotals,
    PortfolioSnapshot,
    # API
    PacingRequest,
    PortfolioRequest,
    BulkDeliveryResponse,
    CampaignPacingResponse,
    ExpectedSpendResponse,
)

__all__ = [
    'PaceStatus',
    'PacingMetric',
    'ChannelGroup',
    'DeliveryChannel',
    'DeliverableMetric',
    'DateWindowPreset',
    'DeliveryWarning',
    'Burst',
    'LineItemSchedule',
    'MonthBucket',
    'CampaignDeliverySchedule',
    'ExpectedToDate',
    'ExpectedDay',
    'DateWindow',
    'DeliveryRow',
    'DeliveryTotals',
    'DailyDeliveryTotal',
    'DeliveryFetchResult',
    'PortfolioDelivery',
    'PacingSeriesPoint',
    'PacingResult',
    'CampaignSummary',
    'ClientSummary',
    'PortfolioTotals',
    'PortfolioSnapshot',
    'PacingRequest',
    'PortfolioRequest',
    'BulkDeliveryResponse',
    'CampaignPacingResponse',
    'ExpectedSpendResponse',
]
