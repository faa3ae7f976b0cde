"""
Pydantic models for the pacing engine.

Covers the normalised planning IR (bursts, line item schedules, month buckets),
warehouse delivery rows, per-line-item pacing results, the portfolio snapshot
and the request/response contracts of the HTTP surface.

Field names are camelCase to match the JSON contract consumed by the
dashboard. All models use Pydantic v2 syntax.
"""

from datetime import date as DateType
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pacing_engine.models.enums import (
    ChannelGroup,
    DateWindowPreset,
    DeliverableMetric,
    DeliveryChannel,
    DeliveryWarning,
    PaceStatus,
)


# =============================================================================
# Planning IR
# =============================================================================

class Burst(BaseModel):
    """
    A contiguous flighting period of a line item with its planned amounts.

    Invariants: endDate >= startDate; planned amounts are non-negative.
    """
    model_config = ConfigDict(frozen=True)

    startDate: DateType = Field(..., description="First day of the burst (inclusive)")
    endDate: DateType = Field(..., description="Last day of the burst (inclusive)")
    plannedSpend: float = Field(default=0.0, ge=0, description="Budget booked for the burst")
    plannedDeliverable: float = Field(
        default=0.0, ge=0, description="Deliverable units booked for the burst"
    )

    @model_validator(mode='after')
    def _check_dates(self) -> 'Burst':
        if self.endDate < self.startDate:
            raise ValueError('endDate must be on or after startDate')
        return self


class LineItemSchedule(BaseModel):
    """Normalised planned schedule of one line item."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "lineItemId": "li-0042",
                "campaignId": "MBA1234",
                "campaignName": "Summer Launch",
                "clientSlug": "acme-foods",
                "clientName": "Acme Foods",
                "channelGroup": "social",
                "platform": "Meta",
                "buyType": "CPM",
                "totalBudget": 3100.0,
                "deliverableTotal": 1000000.0,
                "bursts": [
                    {
                        "startDate": "2024-01-01",
                        "endDate": "2024-01-31",
                        "plannedSpend": 3100.0,
                        "plannedDeliverable": 1000000.0,
                    }
                ],
            }
        }
    )

    lineItemId: str = Field(..., description="Lower-cased, trimmed line item identifier")
    campaignId: str = Field(..., description="Campaign (media booking) identifier")
    campaignName: Optional[str] = Field(None, description="Campaign display name")
    clientSlug: str = Field(default="unknown", description="Slugified client name")
    clientName: Optional[str] = Field(None, description="Client display name")
    channelGroup: ChannelGroup = Field(..., description="Plan channel group")
    platform: Optional[str] = Field(None, description="Publisher/platform as booked")
    buyType: Optional[str] = Field(None, description="Buy type as booked (CPM, CPC, ...)")
    totalBudget: float = Field(default=0.0, ge=0, description="Line item total budget")
    deliverableTotal: float = Field(default=0.0, ge=0, description="Line item total deliverables")
    bursts: List[Burst] = Field(default_factory=list, description="Flighting bursts")


class MonthBucket(BaseModel):
    """One calendar month of a campaign-level delivery schedule."""
    model_config = ConfigDict(frozen=True)

    year: int = Field(..., ge=1900, le=9999)
    month: int = Field(..., ge=1, le=12)
    plannedAmount: float = Field(default=0.0, ge=0, description="Total planned for the month")


class CampaignDeliverySchedule(BaseModel):
    """Month-bucketed delivery schedule of a campaign plus its flight dates."""
    campaignId: str
    campaignStart: Optional[DateType] = None
    campaignEnd: Optional[DateType] = None
    months: List[MonthBucket] = Field(default_factory=list)


class ExpectedToDate(BaseModel):
    """Booked total and the share of it expected to be delivered by the as-of date."""
    bookedTotal: float = Field(default=0.0, description="Sum of planned amounts, no date filter")
    expectedToDate: float = Field(default=0.0, description="Prorated expectation at as-of date")


class ExpectedDay(BaseModel):
    """One day of an evenly-spread expected delivery curve."""
    date: DateType
    spend: float = 0.0
    deliverable: float = 0.0
    cumulativeSpend: float = 0.0
    cumulativeDeliverable: float = 0.0


# =============================================================================
# Delivery
# =============================================================================

class DateWindow(BaseModel):
    """Inclusive calendar window."""
    startDate: DateType
    endDate: DateType


class DeliveryRow(BaseModel):
    """
    One warehouse delivery fact for (line item, date, channel).

    Metrics are non-negative; unknown/missing numbers are 0.
    """
    lineItemId: str
    date: DateType
    channel: DeliveryChannel
    amountSpent: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    results: float = 0.0
    video3sViews: float = 0.0


class DeliveryTotals(BaseModel):
    """Summed delivery metrics."""
    amountSpent: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    results: float = 0.0
    video3sViews: float = 0.0


class DailyDeliveryTotal(DeliveryTotals):
    """Delivery summed across channels for one line item and day."""
    lineItemId: str
    date: DateType


class DeliveryFetchResult(BaseModel):
    """Outcome of a bulk delivery fetch."""
    rows: List[DeliveryRow] = Field(default_factory=list)
    count: int = 0
    truncated: bool = False
    window: Optional[DateWindow] = None
    lineItemIds: List[str] = Field(default_factory=list, description="Ids actually queried")
    warnings: List[DeliveryWarning] = Field(default_factory=list)
    unknownChannels: Dict[str, int] = Field(
        default_factory=dict, description="Dropped rows per unrecognised channel label"
    )
    requestId: Optional[str] = None


class PortfolioDelivery(BaseModel):
    """Daily delivery totals for a portfolio pull."""
    daily: List[DailyDeliveryTotal] = Field(default_factory=list)
    totals: Dict[str, DeliveryTotals] = Field(default_factory=dict)
    dataAsAt: Optional[DateType] = None
    window: Optional[DateWindow] = None
    lineItemIds: List[str] = Field(default_factory=list)
    requestId: Optional[str] = None


# =============================================================================
# Pacing Results
# =============================================================================

class PacingSeriesPoint(BaseModel):
    """Cumulative expected vs actual on one day of the window."""
    date: DateType
    expectedSpend: float = 0.0
    actualSpend: float = 0.0
    expectedDeliverable: float = 0.0
    actualDeliverable: float = 0.0


class PacingResult(BaseModel):
    """Per line item reconciliation of planned vs delivered."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "lineItemId": "li-0042",
                "campaignId": "MBA1234",
                "clientSlug": "acme-foods",
                "deliverableMetric": "IMPRESSIONS",
                "spendToDate": 1045.5,
                "plannedSpendToDate": 3100.0,
                "expectedSpendToDate": 1100.0,
                "spendPaceStatus": "ON",
                "deliverableToDate": 310000,
                "plannedDeliverableToDate": 1000000,
                "expectedDeliverableToDate": 354838.7097,
                "deliverablePaceStatus": "UNDER",
            }
        }
    )

    lineItemId: str
    campaignId: str
    campaignName: Optional[str] = None
    clientSlug: str = "unknown"
    channelGroup: Optional[ChannelGroup] = None
    deliverableMetric: DeliverableMetric = DeliverableMetric.IMPRESSIONS
    spendToDate: float = Field(0.0, description="Actual spend delivered in the window")
    plannedSpendToDate: float = Field(0.0, description="Booked spend (all bursts)")
    expectedSpendToDate: float = Field(0.0, description="Spend expected by the as-of date")
    spendPaceStatus: PaceStatus = PaceStatus.ON
    spendPacePct: Optional[float] = Field(None, description="actual / expected * 100")
    deliverableToDate: float = 0.0
    plannedDeliverableToDate: float = Field(0.0, description="Booked deliverables (all bursts)")
    expectedDeliverableToDate: float = 0.0
    deliverablePaceStatus: PaceStatus = PaceStatus.ON
    deliverablePacePct: Optional[float] = None
    series: Optional[List[PacingSeriesPoint]] = None


class CampaignSummary(BaseModel):
    """Campaign-level roll-up; status classifies summed actual vs summed expected."""
    clientSlug: str
    campaignId: str
    campaignName: Optional[str] = None
    spendToDate: float = 0.0
    plannedSpendToDate: float = 0.0
    expectedSpendToDate: float = 0.0
    spendPaceStatus: PaceStatus = PaceStatus.ON
    spendPacePct: Optional[float] = None
    lineItems: List[PacingResult] = Field(default_factory=list)


class ClientSummary(BaseModel):
    clientSlug: str
    spendToDate: float = 0.0
    plannedSpendToDate: float = 0.0
    expectedSpendToDate: float = 0.0
    campaigns: List[CampaignSummary] = Field(default_factory=list)


class PortfolioTotals(BaseModel):
    plannedTotal: float = 0.0
    expectedToDate: float = 0.0
    spentToDate: float = 0.0
    underCount: int = 0
    onCount: int = 0
    overCount: int = 0
    campaignCount: int = 0
    lineItemCount: int = 0


class PortfolioSnapshot(BaseModel):
    """Nested client → campaign → line item pacing view with portfolio totals."""
    asOfDate: Optional[DateType] = None
    dataAsAt: Optional[DateType] = None
    window: Optional[DateWindow] = None
    clients: List[ClientSummary] = Field(default_factory=list)
    totals: PortfolioTotals = Field(default_factory=PortfolioTotals)
    deliveryDaily: Optional[List[DailyDeliveryTotal]] = None


# =============================================================================
# API Requests / Responses
# =============================================================================

class PacingRequest(BaseModel):
    """
    Campaign pacing request.

    Fields are optional at the schema level so that missing values are
    reported as a pacing validation error (400) instead of a framework 422.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "campaignId": "MBA1234",
                "lineItemIds": ["LI-0042", "li-0043"],
                "startDate": "2024-01-01",
                "endDate": "2024-01-31",
            }
        }
    )

    campaignId: Optional[str] = Field(None, description="Campaign identifier (required)")
    lineItemIds: Optional[List[Union[str, int]]] = Field(None, description="Line item ids (non-empty)")
    startDate: Optional[str] = Field(None, description="ISO start date")
    endDate: Optional[str] = Field(None, description="ISO end date")
    searchLineItemIds: Optional[List[Union[str, int]]] = Field(
        None, description="Ids among lineItemIds read from the search fact (bulk only)"
    )
    includeSeries: bool = Field(False, description="Attach daily expected vs actual series")


class PortfolioRequest(BaseModel):
    clientSlugs: Optional[List[str]] = Field(None, description="Restrict to these clients")
    preset: DateWindowPreset = Field(DateWindowPreset.LAST_60, description="Named window")
    startDate: Optional[str] = Field(None, description="Explicit ISO start (overrides preset)")
    endDate: Optional[str] = Field(None, description="Explicit ISO end (overrides preset)")
    includeDaily: bool = Field(False, description="Attach daily delivery totals")


class BulkDeliveryResponse(BaseModel):
    ok: bool = True
    rows: List[DeliveryRow] = Field(default_factory=list)
    count: int = 0
    truncated: bool = False
    window: Optional[DateWindow] = None
    warnings: List[DeliveryWarning] = Field(default_factory=list)
    requestId: Optional[str] = None


class CampaignPacingResponse(BaseModel):
    ok: bool = True
    asOfDate: DateType
    window: DateWindow
    truncated: bool = False
    warnings: List[DeliveryWarning] = Field(default_factory=list)
    campaign: CampaignSummary
    requestId: Optional[str] = None


class ExpectedSpendResponse(BaseModel):
    campaignId: str
    asOfDate: DateType
    bookedTotal: float
    expectedToDate: float
