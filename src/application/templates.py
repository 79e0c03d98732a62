"""Pure templating for remediation changes: generated files, PR titles and bodies."""

import json
from typing import Dict, List

from jinja2 import Environment, StrictUndefined

from src.domain.models import (
    AnalysisResult,
    GeneratedFile,
    Opportunity,
    OpportunityKind,
    RepositoryDescriptor,
)

GENERIC_PR_TITLE = "Autonomous Optimization"

PR_TITLES: Dict[OpportunityKind, str] = {
    OpportunityKind.SECURITY_HARDENING: "Autonomous Security Hardening",
    OpportunityKind.DUPLICATION_REMOVAL: "AI-Detected Duplication Consolidation",
    OpportunityKind.PERFORMANCE_OPTIMIZATION: "Performance Optimization via Intelligence Analysis",
    OpportunityKind.CI_ENHANCEMENT: "Enhanced CI/CD with Intelligence Integration",
    OpportunityKind.INTELLIGENCE_INTEGRATION: "Homelab Intelligence Platform Integration",
}

INTELLIGENCE_WORKFLOW = """name: Homelab Intelligence Integration

on:
  push:
    branches: [ main, master ]
  pull_request:
    branches: [ main, master ]
  schedule:
    - cron: '0 6 * * *' # Daily analysis at 6 AM UTC

env:
  INTELLIGENCE_WEBHOOK: {{ webhook_url }}

jobs:
  intelligence-analysis:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4

      - name: Trigger Intelligence Analysis
        run: |
          curl -X POST "$INTELLIGENCE_WEBHOOK/analyze" \\
            -H "Content-Type: application/json" \\
            -d '{
              "repository": "{{ repository }}",
              "type": "{{ kind }}",
              "trigger": "github-action",
              "commit": "{% raw %}${{ github.sha }}{% endraw %}",
              "branch": "{% raw %}${{ github.ref_name }}{% endraw %}"
            }'

      - name: Generate Intelligence Report
        run: |
          echo "## Intelligence Analysis Complete" >> $GITHUB_STEP_SUMMARY
          echo "Repository: {{ repository }}" >> $GITHUB_STEP_SUMMARY
          echo "Type: {{ kind }}" >> $GITHUB_STEP_SUMMARY
          echo "Analysis triggered at: $(date)" >> $GITHUB_STEP_SUMMARY
"""

CI_WORKFLOW = """name: Enhanced CI with Intelligence

on:
  push:
    branches: [ main, master ]
  pull_request:
    branches: [ main, master ]

jobs:
{% if language == "typescript" or language == "javascript" %}
  node-analysis:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - uses: actions/setup-node@v4
        with:
          node-version: '20'
          cache: 'npm'

      - run: npm ci
      - run: npm run lint --if-present
      - run: npm run test --if-present
      - run: npm run build --if-present
{% elif language == "python" %}
  python-analysis:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - uses: actions/setup-python@v5
        with:
          python-version: '3.12'

      - run: pip install -e ".[test]" || pip install -r requirements.txt
      - run: python -m pytest
{% elif language == "shell" %}
  shell-analysis:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4

      - name: ShellCheck
        uses: ludeeus/action-shellcheck@master
{% else %}
  repository-checks:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
{% endif %}

      - name: Intelligence Analysis
        run: |
          curl -X POST "{{ webhook_url }}/analyze" \\
            -H "Content-Type: application/json" \\
            -d '{
              "repository": "{{ repository }}",
              "language": "{{ language }}",
              "context": "ci-run"
            }'
"""

SECURITY_WORKFLOW = """name: Security Analysis

on:
  push:
    branches: [ main, master ]
  pull_request:
    branches: [ main, master ]
  schedule:
    - cron: '0 2 * * 1' # Weekly security scan

jobs:
  security-scan:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4

      - name: Run Trivy vulnerability scanner
        uses: aquasecurity/trivy-action@master
        with:
          scan-type: 'fs'
          scan-ref: '.'
          format: 'sarif'
          output: 'trivy-results.sarif'

      - name: Upload Trivy scan results to GitHub Security tab
        uses: github/codeql-action/upload-sarif@v3
        if: always()
        with:
          sarif_file: 'trivy-results.sarif'

      - name: Intelligence Security Analysis
        run: |
          curl -X POST "{{ webhook_url }}/analyze" \\
            -H "Content-Type: application/json" \\
            -d '{
              "repository": "{{ repository }}",
              "analysis_type": "security",
              "context": "security-scan"
            }'
"""

FINDINGS_REPORT = """# {{ title }}

Repository: {{ repository }}
Analysis timestamp: {{ timestamp }}

{% if kind == "duplication-removal" %}
Duplication risk: {{ architecture.duplication_risk.value if architecture else "unknown" }}

## Detected patterns
{% for pattern in (architecture.patterns if architecture else []) %}
- {{ pattern }}
{% else %}
- none reported
{% endfor %}
{% endif %}

## Optimization opportunities
{% for optimization in (architecture.optimizations if architecture else []) %}
- {{ optimization }}
{% else %}
- none reported
{% endfor %}
"""

PR_BODY = """## AI-Generated Optimization

**Analysis Timestamp**: {{ timestamp }}
**Optimization Type**: {{ kind }}
**Priority**: {{ priority }}
**Expected Impact**: {{ impact }}

{% if kind == "security-hardening" %}
### Security Improvements

**Detected Issues**: {{ security.vulnerabilities | length if security else 0 }}
**Current Compliance Score**: {{ security.compliance_score if security else "Unknown" }}
{% if security and security.recommendations %}

**Recommendations**:
{% for rec in security.recommendations %}
- {{ rec }}
{% endfor %}
{% endif %}

{% elif kind == "duplication-removal" %}
### Duplication Analysis

**Duplication Risk**: {{ architecture.duplication_risk.value if architecture else "unknown" }}
**Detected Patterns**: {{ (architecture.patterns | join(", ")) if architecture and architecture.patterns else "Various" }}
{% if architecture and architecture.optimizations %}

**Consolidation Opportunities**:
{% for opt in architecture.optimizations %}
- {{ opt }}
{% endfor %}
{% endif %}

{% elif kind == "performance-optimization" %}
### Performance Optimization

{% for opt in (architecture.optimizations if architecture else []) %}
- {{ opt }}
{% endfor %}

{% elif kind == "ci-enhancement" %}
### CI/CD Enhancement

Adds a {{ language }} CI workflow that reports each run to the intelligence platform.

{% elif kind == "intelligence-integration" %}
### Intelligence Platform Integration

This PR integrates your repository with the Homelab Intelligence platform for:

- **Continuous Architecture Analysis**
- **Automated Security Monitoring**
- **Performance Optimization Recommendations**
- **Community Pattern Integration**
- **Autonomous PR Generation**

{% endif %}
{% if community and community.trends %}
### Community Insights

{% for trend in community.trends %}
- {{ trend }}
{% endfor %}

{% endif %}
### Rollback Plan

This PR can be safely reverted using: `git revert <commit-sha>`

### Testing

- [ ] CI passes
- [ ] No breaking changes
- [ ] Documentation updated
- [ ] Intelligence integration verified

---

*This PR was autonomously generated by the Homelab Intelligence Platform. Review carefully before merging.*
"""

_env = Environment(
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    autoescape=False,
)
_TEMPLATES = {
    name: _env.from_string(source)
    for name, source in {
        "intelligence_workflow": INTELLIGENCE_WORKFLOW,
        "ci_workflow": CI_WORKFLOW,
        "security_workflow": SECURITY_WORKFLOW,
        "findings_report": FINDINGS_REPORT,
        "pr_body": PR_BODY,
    }.items()
}


def render(name: str, **context) -> str:
    return _TEMPLATES[name].render(**context)


def pr_title(opportunity: Opportunity) -> str:
    return PR_TITLES.get(opportunity.kind, GENERIC_PR_TITLE)


def _language(descriptor: RepositoryDescriptor, analysis: AnalysisResult) -> str:
    return (descriptor.primary_language or analysis.host_metadata.language or "unknown").lower()


def pr_body(opportunity: Opportunity, analysis: AnalysisResult, descriptor: RepositoryDescriptor) -> str:
    return render(
        "pr_body",
        timestamp=analysis.timestamp.isoformat(),
        kind=opportunity.kind.value,
        priority=opportunity.priority.value,
        impact=opportunity.impact,
        architecture=analysis.architecture,
        security=analysis.security,
        community=analysis.community,
        language=_language(descriptor, analysis),
    )


def generate_files(
    opportunity: Opportunity,
    analysis: AnalysisResult,
    descriptor: RepositoryDescriptor,
    webhook_url: str,
) -> List[GeneratedFile]:
    """Returns the fixed file set for an opportunity kind; paths are unique."""
    repository = descriptor.name
    kind = opportunity.kind

    if kind == OpportunityKind.INTELLIGENCE_INTEGRATION:
        config = {
            "repository": repository,
            "type": descriptor.kind,
            "analysis_enabled": True,
            "optimization_enabled": True,
            "community_learning": True,
            "auto_pr_enabled": True,
            "webhook_url": f"{webhook_url}/webhook",
        }
        return [
            GeneratedFile(
                path=".github/workflows/intelligence.yml",
                content=render(
                    "intelligence_workflow",
                    repository=repository, kind=descriptor.kind, webhook_url=webhook_url,
                ),
            ),
            GeneratedFile(path=".intelligence/config.json", content=json.dumps(config, indent=2) + "\n"),
        ]

    if kind == OpportunityKind.CI_ENHANCEMENT:
        return [GeneratedFile(
            path=".github/workflows/ci-enhanced.yml",
            content=render(
                "ci_workflow",
                repository=repository, language=_language(descriptor, analysis), webhook_url=webhook_url,
            ),
        )]

    if kind == OpportunityKind.SECURITY_HARDENING:
        return [GeneratedFile(
            path=".github/workflows/security.yml",
            content=render("security_workflow", repository=repository, webhook_url=webhook_url),
        )]

    return [GeneratedFile(
        path=f".intelligence/reports/{kind.value}.md",
        content=render(
            "findings_report",
            title=PR_TITLES.get(kind, GENERIC_PR_TITLE),
            repository=repository,
            timestamp=analysis.timestamp.isoformat(),
            kind=kind.value,
            architecture=analysis.architecture,
        ),
    )]
