"""Security scan over the changed files.

Critical findings are tolerated during the first ``critical_grace_iterations``
iterations and fail the step afterwards. High-severity findings above
``max_high`` are logged but never block.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict

from ai_pipeline.file_io import atomic_write_text
from ai_pipeline.schemas import utc_timestamp
from ai_pipeline.steps.base import EXIT_FAILED, BuiltinStep, Finding, StepContext, StepOutcome
from ai_pipeline.steps.registry import register_step

logger = logging.getLogger(__name__)

SEVERITIES = ("critical", "high", "moderate", "low", "informational")


def normalize_severity(value: str) -> str:
    severity = (value or "").strip().lower()
    if severity == "medium":
        return "moderate"
    return severity if severity in SEVERITIES else "informational"


@register_step
class SecurityScanStep(BuiltinStep):
    step_id = "security_scan"
    display_name = "Security Scan"
    artifact_name = "security_results.json"
    default_thresholds = {"critical_grace_iterations": 1, "max_high": 3}

    def check(self, ctx: StepContext, files: list[str]) -> StepOutcome:
        findings = ctx.findings(files)
        vulnerabilities = [
            {
                "id": f"SEC-{ctx.iteration}-{index:03d}",
                "severity": normalize_severity(f.severity),
                "type": f.category or "Unclassified",
                "description": f.message,
                "file": f.file,
                "line": f.line,
            }
            for index, f in enumerate(findings, start=1)
        ]
        counts = Counter(v["severity"] for v in vulnerabilities)
        summary = {severity: counts.get(severity, 0) for severity in SEVERITIES}

        self.write_artifact(
            ctx,
            {
                "scan_timestamp": utc_timestamp(),
                "files_scanned": len(files),
                "vulnerabilities": vulnerabilities,
                "summary": summary,
            },
        )
        self.write_summary(
            ctx,
            [
                f"Files Scanned: {len(files)}",
                f"Total Vulnerabilities: {len(vulnerabilities)}",
                "",
                "Severity Breakdown:",
                *(f"- {severity.capitalize()}: {summary[severity]}" for severity in SEVERITIES),
            ],
        )
        self._write_report(ctx, findings, vulnerabilities, summary, len(files))

        if summary["high"] > ctx.threshold("max_high"):
            logger.warning("Detected %d high severity vulnerabilities", summary["high"])

        critical = summary["critical"]
        if critical:
            grace = ctx.threshold("critical_grace_iterations")
            if ctx.iteration >= grace:
                logger.error(
                    "Critical vulnerabilities (%d) at iteration %d; pipeline cannot continue",
                    critical,
                    ctx.iteration,
                )
                return StepOutcome(
                    exit_code=EXIT_FAILED,
                    warnings=len(vulnerabilities),
                    message=f"{critical} critical vulnerabilities",
                )
            logger.warning(
                "Critical vulnerabilities (%d) tolerated during the first %d iteration(s)",
                critical,
                grace,
            )
        logger.info("Security scan completed: %d findings", len(vulnerabilities))
        return StepOutcome(warnings=len(vulnerabilities))

    def _write_report(
        self,
        ctx: StepContext,
        findings: list[Finding],
        vulnerabilities: list[dict],
        summary: dict[str, int],
        files_scanned: int,
    ) -> None:
        lines = [
            f"# Security Scan Report for {ctx.feature} (Iteration {ctx.iteration})",
            "",
            "## Summary",
            "",
            f"- **Files Scanned**: {files_scanned}",
            f"- **Total Vulnerabilities**: {len(vulnerabilities)}",
            "",
            "## Severity Breakdown",
            "",
            *(f"- **{severity.capitalize()}**: {summary[severity]}" for severity in SEVERITIES),
            "",
            "## Vulnerabilities by Type",
            "",
        ]
        by_type: dict[str, int] = defaultdict(int)
        for vuln in vulnerabilities:
            by_type[vuln["type"]] += 1
        lines += [f"- **{kind}**: {count}" for kind, count in sorted(by_type.items())]

        severe = [v for v in vulnerabilities if v["severity"] in {"critical", "high"}]
        if severe:
            lines += ["", "## Critical & High Severity Issues", ""]
            for vuln in severe:
                lines += [
                    f"### [{vuln['severity'].upper()}] {vuln['type']} in {vuln['file']} "
                    f"(line {vuln['line']})",
                    "",
                    vuln["description"],
                    "",
                ]

        lines += ["", "## Recommendations", ""]
        if summary["critical"]:
            lines.append("- **URGENT**: Address all critical vulnerabilities before proceeding")
        if summary["high"]:
            lines.append("- Address high severity issues as soon as possible")
        if not summary["critical"] and not summary["high"] and summary["moderate"]:
            lines.append("- Review and fix moderate severity issues during this development cycle")
        if not findings:
            lines.append("- No security issues detected.")
        atomic_write_text(ctx.output_dir / "security_report.md", "\n".join(lines) + "\n")
