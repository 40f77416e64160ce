"""Read-only spend analysis."""

from budget_ledger.analysis.aggregator import (
    AnalysisAggregator,
    analyze_category,
    analyze_month,
    category_roles,
    daily_spend,
    monthly_summary,
    net_outflow,
    payment_method_breakdown,
    top_categories,
)

__all__ = [
    "AnalysisAggregator",
    "analyze_category",
    "analyze_month",
    "category_roles",
    "daily_spend",
    "monthly_summary",
    "net_outflow",
    "payment_method_breakdown",
    "top_categories",
]
