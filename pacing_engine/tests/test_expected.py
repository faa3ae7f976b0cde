"""
Tests for expected-to-date computation.

Per-burst proration uses inclusive calendar days; the month-bucket variant
prorates only the as-of month, clipped to the campaign dates.
"""

import random
from datetime import date, timedelta

import pytest

from pacing_engine.models import (
    Burst,
    ChannelGroup,
    DeliveryTotals,
    LineItemSchedule,
    MonthBucket,
    PaceStatus,
    PacingMetric,
)
from pacing_engine.services.classification import classify_line_item
from pacing_engine.services.expected import (
    compute_month_bucket_to_date,
    compute_to_date,
    elapsed_fraction,
    expected_daily_series,
)


class TestElapsedFraction:

    def test_before_start(self):
        assert elapsed_fraction(date(2024, 1, 1), date(2024, 1, 31), date(2023, 12, 31)) == 0.0

    def test_first_day_counts_as_one_day(self):
        assert elapsed_fraction(date(2024, 1, 1), date(2024, 1, 31), date(2024, 1, 1)) == pytest.approx(1 / 31)

    def test_on_end(self):
        assert elapsed_fraction(date(2024, 1, 1), date(2024, 1, 31), date(2024, 1, 31)) == 1.0

    def test_single_day_period(self):
        assert elapsed_fraction(date(2024, 1, 5), date(2024, 1, 5), date(2024, 1, 5)) == 1.0


class TestComputeToDate:

    def test_mid_burst_proration(self, january_burst):
        result = compute_to_date([january_burst], date(2024, 1, 11))

        assert result.bookedTotal == 3100.0
        assert result.expectedToDate == pytest.approx(1100.0)

    def test_deliverable_metric(self, january_burst):
        result = compute_to_date([january_burst], date(2024, 1, 11), PacingMetric.DELIVERABLE)

        assert result.bookedTotal == 1000000.0
        assert result.expectedToDate == pytest.approx(1000000.0 * 11 / 31)

    def test_before_campaign_start(self, january_burst):
        result = compute_to_date([january_burst], date(2023, 12, 31))
        assert result.expectedToDate == 0.0
        assert result.bookedTotal == 3100.0

    def test_after_campaign_end(self, january_burst):
        result = compute_to_date([january_burst], date(2024, 3, 1))
        assert result.expectedToDate == result.bookedTotal == 3100.0

    def test_on_campaign_end(self, january_burst):
        assert compute_to_date([january_burst], date(2024, 1, 31)).expectedToDate == 3100.0

    def test_no_bursts(self):
        result = compute_to_date([], date(2024, 1, 11))
        assert result.bookedTotal == 0.0
        assert result.expectedToDate == 0.0

    def test_multiple_bursts_with_gap(self):
        bursts = [
            Burst(startDate=date(2024, 1, 1), endDate=date(2024, 1, 10), plannedSpend=1000.0),
            Burst(startDate=date(2024, 2, 1), endDate=date(2024, 2, 10), plannedSpend=500.0),
        ]

        # In the gap only the first burst has elapsed
        assert compute_to_date(bursts, date(2024, 1, 20)).expectedToDate == pytest.approx(1000.0)
        # Halfway through the second burst
        assert compute_to_date(bursts, date(2024, 2, 5)).expectedToDate == pytest.approx(1250.0)

    def test_overlapping_bursts_add(self):
        bursts = [
            Burst(startDate=date(2024, 1, 1), endDate=date(2024, 1, 10), plannedSpend=100.0),
            Burst(startDate=date(2024, 1, 1), endDate=date(2024, 1, 10), plannedSpend=300.0),
        ]
        result = compute_to_date(bursts, date(2024, 1, 5))
        assert result.expectedToDate == pytest.approx(200.0)

    def test_never_exceeds_booked_total(self):
        bursts = [
            Burst(startDate=date(2024, 1, 1), endDate=date(2024, 1, 3), plannedSpend=0.1),
            Burst(startDate=date(2024, 1, 1), endDate=date(2024, 1, 31), plannedSpend=0.2),
        ]
        for day in range(1, 32):
            result = compute_to_date(bursts, date(2024, 1, day))
            assert result.expectedToDate <= result.bookedTotal

    def test_burst_order_does_not_change_result(self):
        bursts = [
            Burst(startDate=date(2024, 1, d), endDate=date(2024, 1, d + 9), plannedSpend=0.1 * d)
            for d in range(1, 15)
        ]
        shuffled = list(bursts)
        random.Random(7).shuffle(shuffled)

        assert compute_to_date(bursts, date(2024, 1, 12)) == compute_to_date(shuffled, date(2024, 1, 12))

    @pytest.mark.parametrize('metric', [PacingMetric.SPEND, PacingMetric.DELIVERABLE])
    def test_non_decreasing_and_bounded(self, metric):
        bursts = [
            Burst(startDate=date(2024, 1, 5), endDate=date(2024, 1, 20), plannedSpend=1600.0, plannedDeliverable=7.0),
            Burst(startDate=date(2024, 1, 15), endDate=date(2024, 2, 3), plannedSpend=0.3, plannedDeliverable=90000.0),
        ]
        previous = 0.0
        day = date(2023, 12, 25)
        while day <= date(2024, 2, 15):
            result = compute_to_date(bursts, day, metric)
            assert previous <= result.expectedToDate <= result.bookedTotal
            previous = result.expectedToDate
            day += timedelta(days=1)
        assert previous == result.bookedTotal

    def test_repeated_calls_identical(self, january_burst):
        bursts = [january_burst, Burst(startDate=date(2024, 1, 20), endDate=date(2024, 2, 9), plannedSpend=0.7)]

        first = compute_to_date(bursts, date(2024, 1, 25))
        second = compute_to_date(bursts, date(2024, 1, 25))

        assert first == second
        assert bursts[0] == january_burst

    def test_completed_bursts_paced_end_to_end(self):
        bursts = [
            Burst(startDate=date(2024, 3, 1), endDate=date(2024, 3, 15), plannedSpend=6000.0),
            Burst(startDate=date(2024, 4, 1), endDate=date(2024, 4, 20), plannedSpend=4000.0),
        ]
        schedule = LineItemSchedule(
            lineItemId='li-7',
            campaignId='MBA300',
            channelGroup=ChannelGroup.SOCIAL,
            buyType='CPM',
            totalBudget=10000.0,
            bursts=bursts,
        )
        as_of = date(2024, 5, 1)

        expected_spend = compute_to_date(bursts, as_of, PacingMetric.SPEND)
        expected_deliverable = compute_to_date(bursts, as_of, PacingMetric.DELIVERABLE)
        result = classify_line_item(schedule, DeliveryTotals(amountSpent=9500.0), expected_spend, expected_deliverable)

        assert expected_spend.expectedToDate == expected_spend.bookedTotal == 10000.0
        assert result.expectedSpendToDate == 10000.0
        assert result.spendToDate == 9500.0
        assert result.spendPaceStatus == PaceStatus.ON


class TestExpectedDailySeries:

    def test_even_spread_and_cumulative(self):
        burst = Burst(startDate=date(2024, 1, 1), endDate=date(2024, 1, 4), plannedSpend=400.0, plannedDeliverable=40.0)

        series = expected_daily_series([burst])

        assert [p.spend for p in series] == [100.0, 100.0, 100.0, 100.0]
        assert series[-1].cumulativeSpend == pytest.approx(400.0)
        assert series[-1].cumulativeDeliverable == pytest.approx(40.0)

    def test_gap_days_are_zero(self):
        bursts = [
            Burst(startDate=date(2024, 1, 1), endDate=date(2024, 1, 1), plannedSpend=10.0),
            Burst(startDate=date(2024, 1, 4), endDate=date(2024, 1, 4), plannedSpend=20.0),
        ]

        series = expected_daily_series(bursts)

        assert [p.date.day for p in series] == [1, 2, 3, 4]
        assert [p.spend for p in series] == [10.0, 0.0, 0.0, 20.0]
        assert series[-1].cumulativeSpend == pytest.approx(30.0)

    def test_empty(self):
        assert expected_daily_series([]) == []


class TestMonthBucketToDate:

    @pytest.fixture
    def months(self):
        return [
            MonthBucket(year=2024, month=1, plannedAmount=3100.0),
            MonthBucket(year=2024, month=2, plannedAmount=2900.0),
            MonthBucket(year=2024, month=3, plannedAmount=1000.0),
        ]

    def test_prior_months_full_current_month_prorated(self, months):
        result = compute_month_bucket_to_date(months, date(2024, 2, 10))

        assert result.bookedTotal == 7000.0
        # All of January plus 10/29 of February (leap year)
        assert result.expectedToDate == pytest.approx(3100.0 + 2900.0 * 10 / 29)

    def test_current_month_clipped_to_campaign_start(self):
        months = [MonthBucket(year=2024, month=6, plannedAmount=1600.0)]

        result = compute_month_bucket_to_date(
            months,
            date(2024, 6, 22),
            campaign_start=date(2024, 6, 15),
            campaign_end=date(2024, 12, 31),
        )

        # June 15..30 is 16 days; 8 have elapsed
        assert result.expectedToDate == pytest.approx(800.0)

    def test_current_month_clipped_to_campaign_end(self):
        months = [MonthBucket(year=2024, month=6, plannedAmount=1000.0)]

        result = compute_month_bucket_to_date(
            months,
            date(2024, 6, 5),
            campaign_start=date(2024, 6, 1),
            campaign_end=date(2024, 6, 10),
        )

        assert result.expectedToDate == pytest.approx(500.0)

    def test_before_campaign_start(self, months):
        result = compute_month_bucket_to_date(months, date(2023, 12, 1), campaign_start=date(2024, 1, 1))
        assert result.expectedToDate == 0.0

    def test_after_campaign_end(self, months):
        result = compute_month_bucket_to_date(months, date(2024, 4, 2), campaign_end=date(2024, 3, 31))
        assert result.expectedToDate == 7000.0

    def test_future_months_count_zero(self, months):
        result = compute_month_bucket_to_date(months, date(2024, 1, 31))
        assert result.expectedToDate == pytest.approx(3100.0)

    def test_empty_months(self):
        result = compute_month_bucket_to_date([], date(2024, 1, 1))
        assert result.bookedTotal == 0.0
        assert result.expectedToDate == 0.0
