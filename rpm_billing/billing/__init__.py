"""Billing module: aggregation, CPT eligibility and clinic reports."""

from rpm_billing.billing.cpt_codes import CPT_CODE_LABELS, CPT_CODES, CPTCode
from rpm_billing.billing.device_aggregator import aggregate_transmission_days
from rpm_billing.billing.engine import (
    BillingReportAssembler,
    merge_clinic_summaries,
    summarize_clinic,
)
from rpm_billing.billing.evaluator import evaluate_patient
from rpm_billing.billing.initial_setup import confirm_initial_setup_billed, evaluate_initial_setup
from rpm_billing.billing.rules import DEFAULT_RULES, BillingRules, add_on_blocks, rules_for_period
from rpm_billing.billing.time_aggregator import aggregate_time_entries

__all__ = [
    "CPT_CODES",
    "CPT_CODE_LABELS",
    "CPTCode",
    "aggregate_transmission_days",
    "aggregate_time_entries",
    "BillingReportAssembler",
    "merge_clinic_summaries",
    "summarize_clinic",
    "evaluate_patient",
    "confirm_initial_setup_billed",
    "evaluate_initial_setup",
    "DEFAULT_RULES",
    "BillingRules",
    "add_on_blocks",
    "rules_for_period",
]
