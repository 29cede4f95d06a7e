"""Query package."""

from lifeledger.queries.dashboard import DashboardQuery
from lifeledger.queries.reports import ReportQuery

__all__ = ["DashboardQuery", "ReportQuery"]
