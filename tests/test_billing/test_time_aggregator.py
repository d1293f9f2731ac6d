"""Tests for time entry aggregation."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from rpm_billing.billing.time_aggregator import aggregate_time_entries
from rpm_billing.models.billing import PerformerType, TimeEntryActivity


class TestAggregateTimeEntries:
    def test_empty(self):
        agg = aggregate_time_entries([])
        assert agg.total_minutes == 0
        assert agg.rpm_minutes == 0
        assert agg.by_activity == {}

    def test_rpm_activities(self, make_entry):
        agg = aggregate_time_entries([
            make_entry(10, TimeEntryActivity.PATIENT_REVIEW),
            make_entry(5, TimeEntryActivity.DOCUMENTATION),
            make_entry(3, TimeEntryActivity.OTHER),
        ])
        assert agg.rpm_minutes == 18
        assert agg.rpm_physician_minutes == 0
        assert agg.care_management_minutes == 0
        assert agg.total_minutes == 18

    def test_physician_rpm_minutes_also_count_toward_rpm(self, make_entry):
        agg = aggregate_time_entries([
            make_entry(20, TimeEntryActivity.PATIENT_REVIEW, PerformerType.PHYSICIAN_QHP),
            make_entry(15, TimeEntryActivity.PATIENT_REVIEW),
        ])
        assert agg.rpm_minutes == 35
        assert agg.rpm_physician_minutes == 20

    def test_care_management_split_by_performer(self, make_entry):
        agg = aggregate_time_entries([
            make_entry(25, TimeEntryActivity.CARE_PLAN_UPDATE),
            make_entry(10, TimeEntryActivity.PHONE_CALL),
            make_entry(35, TimeEntryActivity.COORDINATION, PerformerType.PHYSICIAN_QHP),
        ])
        assert agg.rpm_minutes == 0
        assert agg.care_management_minutes == 70
        assert agg.ccm_clinical_staff_minutes == 35
        assert agg.ccm_physician_minutes == 35
        assert agg.pcm_clinical_staff_minutes == 35
        assert agg.pcm_physician_minutes == 35

    def test_each_entry_counts_in_one_family(self, make_entry):
        entries = [
            make_entry(12, TimeEntryActivity.PATIENT_REVIEW),
            make_entry(30, TimeEntryActivity.CARE_PLAN_UPDATE),
            make_entry(8, TimeEntryActivity.OTHER, PerformerType.PHYSICIAN_QHP),
        ]
        agg = aggregate_time_entries(entries)
        assert agg.rpm_minutes + agg.care_management_minutes == agg.total_minutes

    def test_by_activity_totals(self, make_entry):
        agg = aggregate_time_entries([
            make_entry(10, TimeEntryActivity.PHONE_CALL),
            make_entry(7, TimeEntryActivity.PHONE_CALL),
            make_entry(4, TimeEntryActivity.DOCUMENTATION),
        ])
        assert agg.by_activity == {
            TimeEntryActivity.PHONE_CALL: 17,
            TimeEntryActivity.DOCUMENTATION: 4,
        }

    def test_order_does_not_matter(self, make_entry):
        entries = [
            make_entry(10, TimeEntryActivity.PATIENT_REVIEW),
            make_entry(20, TimeEntryActivity.COORDINATION, PerformerType.PHYSICIAN_QHP),
            make_entry(5, TimeEntryActivity.OTHER),
        ]
        assert aggregate_time_entries(entries) == aggregate_time_entries(reversed(entries))

    def test_non_positive_duration_rejected(self, make_entry):
        with pytest.raises(PydanticValidationError):
            make_entry(0)
