"""
Generate human-readable aggregation reports in Markdown format.

This module provides AggregationReporter, which turns an AggregationResult,
its AggregationMetrics and quality check results into a Markdown report.

Report sections:
- Header with run metadata (ID, timestamp, duration)
- Risk summary with score, level and recommendations
- Source health, including failed feeds and their reasons
- Indicator counts by category and severity
- Data quality check results

Design decisions:
- Uses tabulate library for table formatting (GitHub-flavored)
- Reports saved with timestamp for historical tracking
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from tabulate import tabulate

from ..normalization.indicator import SEVERITY_ORDER
from .metrics import AggregationMetrics
from .quality_checks import QualityCheckResult


class AggregationReporter:
    """
    Generates Markdown reports from aggregation results.
    """

    def generate_report(
        self,
        result,
        quality_results: List[QualityCheckResult],
        metrics: Optional[AggregationMetrics] = None,
    ) -> str:
        """
        Generate full report in Markdown format.

        Args:
            result: AggregationResult from a completed cycle
            quality_results: List of quality check results
            metrics: Metrics of the cycle, if collected

        Returns:
            Markdown-formatted report as string
        """
        formatted = result.formatted
        lines = []

        lines.append("# Threat Intelligence Aggregation Report")
        if metrics is not None:
            lines.append(f"**Run ID:** {metrics.run_id}")
        lines.append(f"**Generated:** {result.generated_at.isoformat()}")
        lines.append(f"**Duration:** {result.aggregation_time:.1f} seconds")
        lines.append("")

        lines.append("## Summary")
        lines.append(formatted.summary)
        lines.append("")
        summary_data = [
            ["Risk Level", formatted.risk_level],
            ["Risk Score", formatted.risk_score],
            ["Sources", result.total_sources],
            ["Successful", result.successful_sources],
            ["Failed", len(result.failed_sources)],
            ["Indicators", result.indicator_total],
            ["Duplicates Merged", result.duplicates_merged],
        ]
        lines.append(tabulate(summary_data, headers=["Metric", "Value"], tablefmt="github"))
        lines.append("")

        if formatted.recommendations:
            lines.append("## Recommendations")
            for recommendation in formatted.recommendations:
                lines.append(f"- {recommendation}")
            lines.append("")

        lines.append("## Source Health")
        health_data = []
        for name, stats in result.source_stats.items():
            status = "✓" if stats.ok else "✗"
            health_data.append([status, name, stats.indicators, stats.invalid,
                                f"{stats.duration:.2f}s", stats.error_kind or ""])
        lines.append(tabulate(
            health_data,
            headers=["Status", "Source", "Indicators", "Invalid", "Duration", "Error"],
            tablefmt="github",
        ))
        lines.append("")

        if result.failed_sources:
            lines.append("## Failed Sources")
            failed_data = [[f.source, f.error_kind, f.reason] for f in result.failed_sources]
            lines.append(tabulate(failed_data, headers=["Source", "Kind", "Reason"], tablefmt="github"))
            lines.append("")

        if result.indicators_by_category:
            lines.append("## Indicators by Category")
            category_data = [[k, len(v)] for k, v in result.indicators_by_category.items()]
            lines.append(tabulate(category_data, headers=["Category", "Count"], tablefmt="github"))
            lines.append("")

        lines.append("## Severity Distribution")
        severity_data = [
            [severity, formatted.severity_counts.get(severity, 0)]
            for severity in reversed(SEVERITY_ORDER)
        ]
        lines.append(tabulate(severity_data, headers=["Severity", "Count"], tablefmt="github"))
        lines.append("")

        lines.append("## Data Quality Checks")
        quality_data = []
        for qr in quality_results:
            status = "✓" if qr.passed else "✗"
            quality_data.append([status, qr.check_name, qr.message])
        lines.append(tabulate(quality_data, headers=["Status", "Check", "Details"], tablefmt="github"))
        lines.append("")

        return "\n".join(lines)

    def save_report(self, report: str, output_dir: Path) -> Path:
        """
        Save report to file with timestamp.

        Args:
            report: Markdown report content
            output_dir: Directory to save report in

        Returns:
            Path to saved report file
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        filepath = output_dir / f"aggregation-report-{timestamp}.md"
        filepath.write_text(report, encoding="utf-8")
        return filepath
