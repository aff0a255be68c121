# src/auditor/services/report_service.py
import logging
from typing import Any, Dict, List

import pandas as pd

from auditor.model import AuditResult, Category, Severity

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ['Severity', 'Category', 'Criterion', 'Element', 'Rule', 'Issue', 'Fix', 'BFSI', 'URL']
SEVERITY_ORDER = {Severity.HIGH.value: 1, Severity.MEDIUM.value: 2, Severity.LOW.value: 3}


class ReportService:
    """
    Builds summary and tabular views of a completed AuditResult for dashboards and exports.
    Persistence (writing files) is left to callers.
    """

    def summary(self, result: AuditResult) -> Dict[str, Any]:
        """Headline numbers plus per-principle and per-severity breakdowns."""
        return {
            "url": result.url,
            "complianceScore": result.compliance_score,
            "status": result.compliance_status.value,
            "totalElements": result.total_elements,
            "totalViolations": len(result.violations),
            "wcagViolations": result.generic_violation_count,
            "bfsiFlags": result.domain_flag_count,
            "byCategory": {c.value: result.category_breakdown().get(c.value, 0) for c in Category},
            "bySeverity": {s.value: result.severity_breakdown().get(s.value, 0) for s in Severity},
        }

    def export_rows(self, result: AuditResult, mode: str = "all") -> List[Dict[str, Any]]:
        """One flat row per violation, in report order, filtered like the dashboard."""
        return [
            {
                "Severity": v.severity.value,
                "Category": v.category.value,
                "Criterion": v.criterion,
                "Element": v.element_selector,
                "Rule": v.rule_id,
                "Issue": v.issue,
                "Fix": v.fix,
                "BFSI": v.is_domain_specific,
                "URL": result.url,
            }
            for v in result.filter_violations(mode)
        ]

    def to_dataframe(self, result: AuditResult, mode: str = "all") -> pd.DataFrame:
        """Action list as a DataFrame, High severity first (stable within a severity)."""
        df = pd.DataFrame(self.export_rows(result, mode), columns=EXPORT_COLUMNS)
        if df.empty:
            return df
        df['SevRank'] = df['Severity'].map(SEVERITY_ORDER)
        return df.sort_values(by='SevRank', kind='stable').drop(columns=['SevRank']).reset_index(drop=True)

    def issue_summary(self, result: AuditResult) -> pd.DataFrame:
        """Violation counts grouped by severity, principle and criterion."""
        df = self.to_dataframe(result)
        if df.empty:
            return pd.DataFrame(columns=['Severity', 'Category', 'Criterion', 'Count'])

        df_summary = df.groupby(['Severity', 'Category', 'Criterion']).size().reset_index(name='Count')
        df_summary['SevRank'] = df_summary['Severity'].map(SEVERITY_ORDER)
        df_summary = df_summary.sort_values(by=['SevRank', 'Count'], ascending=[True, False]).drop(columns=['SevRank'])
        logger.debug("Issue summary for %s: %d groups", result.url, len(df_summary))
        return df_summary.reset_index(drop=True)
