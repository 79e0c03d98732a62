import json
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from src.application import templates
from src.application.templates import generate_files, pr_body, pr_title
from src.domain.models import (
    AnalysisResult,
    ArchitectureFinding,
    CommunityFinding,
    HostMetadata,
    Opportunity,
    OpportunityKind,
    RepositoryDescriptor,
    SecurityFinding,
)

WEBHOOK = "https://intel.example"


def _descriptor(language: str = "TypeScript") -> RepositoryDescriptor:
    return RepositoryDescriptor(name="homeops", kind="operations", primary_language=language)


def _analysis() -> AnalysisResult:
    return AnalysisResult(
        name="homeops",
        host_metadata=HostMetadata(name="homeops", language="TypeScript"),
        architecture=ArchitectureFinding(
            patterns=["gitops", "helm"], optimizations=["cache images"], duplication_risk="high",
        ),
        security=SecurityFinding(
            vulnerabilities=["exposed token", "open port"], compliance_score=55,
            recommendations=["rotate secrets"],
        ),
        community=CommunityFinding(trends=["talos linux"]),
        timestamp=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )


def _opportunity(kind: OpportunityKind, priority: str = "high") -> Opportunity:
    return Opportunity(kind=kind, priority=priority, impact="impact")


class TestGenerateFiles(unittest.TestCase):
    def test_intelligence_integration_writes_workflow_and_config(self) -> None:
        files = generate_files(
            _opportunity(OpportunityKind.INTELLIGENCE_INTEGRATION), _analysis(), _descriptor(), WEBHOOK,
        )

        paths = [f.path for f in files]
        self.assertEqual(paths, [".github/workflows/intelligence.yml", ".intelligence/config.json"])
        workflow = files[0].content
        self.assertIn("${{ github.sha }}", workflow)
        self.assertIn('"repository": "homeops"', workflow)
        config = json.loads(files[1].content)
        self.assertEqual(config["type"], "operations")
        self.assertEqual(config["webhook_url"], f"{WEBHOOK}/webhook")

    def test_ci_workflow_follows_primary_language(self) -> None:
        shell = generate_files(
            _opportunity(OpportunityKind.CI_ENHANCEMENT, "low"), _analysis(), _descriptor("Shell"), WEBHOOK,
        )[0]
        node = generate_files(
            _opportunity(OpportunityKind.CI_ENHANCEMENT, "low"), _analysis(), _descriptor("TypeScript"), WEBHOOK,
        )[0]

        self.assertEqual(shell.path, ".github/workflows/ci-enhanced.yml")
        self.assertIn("ShellCheck", shell.content)
        self.assertNotIn("npm ci", shell.content)
        self.assertIn("npm ci", node.content)

    def test_security_hardening_adds_trivy_workflow(self) -> None:
        files = generate_files(
            _opportunity(OpportunityKind.SECURITY_HARDENING), _analysis(), _descriptor(), WEBHOOK,
        )

        self.assertEqual([f.path for f in files], [".github/workflows/security.yml"])
        self.assertIn("aquasecurity/trivy-action", files[0].content)

    def test_performance_report_lists_optimizations(self) -> None:
        files = generate_files(
            _opportunity(OpportunityKind.PERFORMANCE_OPTIMIZATION, "medium"), _analysis(), _descriptor(), WEBHOOK,
        )

        self.assertEqual(files[0].path, ".intelligence/reports/performance-optimization.md")
        self.assertIn("- cache images", files[0].content)

    def test_file_paths_are_unique_per_kind(self) -> None:
        for kind in OpportunityKind:
            files = generate_files(_opportunity(kind), _analysis(), _descriptor(), WEBHOOK)
            paths = [f.path for f in files]
            self.assertEqual(len(paths), len(set(paths)), kind)


class TestPullRequestText(unittest.TestCase):
    def test_title_uses_mapping(self) -> None:
        self.assertEqual(
            pr_title(_opportunity(OpportunityKind.SECURITY_HARDENING)), "Autonomous Security Hardening",
        )

    def test_unmapped_kind_falls_back_to_generic_title(self) -> None:
        with patch.dict(templates.PR_TITLES, {}, clear=True):
            title = pr_title(_opportunity(OpportunityKind.CI_ENHANCEMENT))

        self.assertEqual(title, templates.GENERIC_PR_TITLE)

    def test_security_body_embeds_vulnerability_count_and_trends(self) -> None:
        body = pr_body(_opportunity(OpportunityKind.SECURITY_HARDENING), _analysis(), _descriptor())

        self.assertIn("**Detected Issues**: 2", body)
        self.assertIn("- rotate secrets", body)
        self.assertIn("### Community Insights", body)
        self.assertIn("- talos linux", body)
        self.assertIn("2026-01-02T03:04:05+00:00", body)

    def test_duplication_body_embeds_risk_and_patterns(self) -> None:
        body = pr_body(_opportunity(OpportunityKind.DUPLICATION_REMOVAL, "medium"), _analysis(), _descriptor())

        self.assertIn("**Duplication Risk**: high", body)
        self.assertIn("gitops, helm", body)

    def test_body_renders_without_findings(self) -> None:
        analysis = AnalysisResult(name="homeops", host_metadata=HostMetadata(name="homeops"))

        body = pr_body(_opportunity(OpportunityKind.SECURITY_HARDENING), analysis, _descriptor())

        self.assertIn("**Detected Issues**: 0", body)
        self.assertNotIn("Community Insights", body)
