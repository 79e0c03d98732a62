from typing import List

from src.domain.models import AnalysisResult, Opportunity, OpportunityKind, Priority, RiskLevel

# Caps remediation volume per repository per run.
MAX_OPPORTUNITIES_PER_REPOSITORY = 2


def select_opportunities(
    analysis: AnalysisResult, cap: int = MAX_OPPORTUNITIES_PER_REPOSITORY
) -> List[Opportunity]:
    """
    Maps one repository's analysis to remediation opportunities.

    Rules are evaluated in a fixed order and the first `cap` matches are kept
    in that order. Pure function: no I/O, same input gives the same output.
    """
    opportunities: List[Opportunity] = []
    architecture = analysis.architecture
    security = analysis.security

    if security is not None and security.vulnerabilities:
        opportunities.append(Opportunity(
            kind=OpportunityKind.SECURITY_HARDENING,
            priority=Priority.HIGH,
            impact="security improvement",
        ))

    if architecture is not None and architecture.duplication_risk == RiskLevel.HIGH:
        opportunities.append(Opportunity(
            kind=OpportunityKind.DUPLICATION_REMOVAL,
            priority=Priority.MEDIUM,
            impact="code consolidation",
        ))

    if architecture is not None and architecture.optimizations:
        opportunities.append(Opportunity(
            kind=OpportunityKind.PERFORMANCE_OPTIMIZATION,
            priority=Priority.MEDIUM,
            impact="performance improvement",
        ))

    opportunities.append(Opportunity(
        kind=OpportunityKind.CI_ENHANCEMENT,
        priority=Priority.LOW,
        impact="workflow automation",
    ))

    opportunities.append(Opportunity(
        kind=OpportunityKind.INTELLIGENCE_INTEGRATION,
        priority=Priority.HIGH,
        impact="AI-native capabilities",
    ))

    return opportunities[:cap]
