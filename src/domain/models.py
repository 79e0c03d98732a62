from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Priorities share the low/medium/high scale with duplication risk.
Priority = RiskLevel


class OpportunityKind(str, Enum):
    SECURITY_HARDENING = "security-hardening"
    DUPLICATION_REMOVAL = "duplication-removal"
    PERFORMANCE_OPTIMIZATION = "performance-optimization"
    CI_ENHANCEMENT = "ci-enhancement"
    INTELLIGENCE_INTEGRATION = "intelligence-integration"


class RepositoryDescriptor(BaseModel):
    """
    Immutable registry entry describing one repository of the fleet.
    Descriptors come from the fleet registry and are never mutated at runtime.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Repository name under the fleet owner")
    kind: str = Field(..., description="Role of the repository, e.g. 'gitops'")
    primary_language: str = Field(..., description="Dominant language, e.g. 'TypeScript'")
    visibility: Literal["public", "private"] = "private"
    focus: str = Field("", description="Free-form optimization focus for this repository")


class FleetRegistry(BaseModel):
    """Mapping of repository name to descriptor, injected into the orchestrator."""
    model_config = ConfigDict(frozen=True)

    repositories: Dict[str, RepositoryDescriptor] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.repositories)

    def __contains__(self, name: object) -> bool:
        return name in self.repositories

    def descriptors(self) -> List[RepositoryDescriptor]:
        return list(self.repositories.values())

    def get(self, name: str) -> Optional[RepositoryDescriptor]:
        return self.repositories.get(name)


class HostMetadata(BaseModel):
    """Subset of the host's repository record used by the analyses."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    full_name: str = ""
    description: Optional[str] = None
    language: Optional[str] = None
    size: int = Field(0, ge=0, description="Repository size in KB")
    private: bool = False
    has_issues: bool = True
    default_branch: str = "main"
    html_url: Optional[str] = None


class ArchitectureFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    patterns: List[str] = Field(default_factory=list)
    iac_approach: str = "unknown"
    integrations: List[str] = Field(default_factory=list)
    optimizations: List[str] = Field(default_factory=list)
    duplication_risk: RiskLevel = RiskLevel.LOW


class SecurityFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    secrets_management: str = "unknown"
    access_control: str = "unknown"
    vulnerabilities: List[str] = Field(default_factory=list)
    compliance_score: float = 0
    recommendations: List[str] = Field(default_factory=list)


class CommunityFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    trends: List[str] = Field(default_factory=list)
    discussions: List[str] = Field(default_factory=list)
    similar_projects: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """
    Analysis of one repository. Each finding is either complete or None when
    its sub-analysis failed; the record itself always exists once host
    metadata was fetched.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    host_metadata: HostMetadata
    architecture: Optional[ArchitectureFinding] = None
    security: Optional[SecurityFinding] = None
    community: Optional[CommunityFinding] = None
    timestamp: datetime = Field(default_factory=utcnow)


class RepositoryFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    error_message: str


class FleetPartition(BaseModel):
    """Outcome of a fleet run: which repositories were analyzed and which failed."""
    model_config = ConfigDict(frozen=True)

    successful: List[AnalysisResult] = Field(default_factory=list)
    failed: List[RepositoryFailure] = Field(default_factory=list)


class ConsolidationPlan(BaseModel):
    """Fleet-wide recommendations. Fields are always lists, possibly empty."""
    model_config = ConfigDict(frozen=True)

    duplications: List[str] = Field(default_factory=list)
    consolidations: List[str] = Field(default_factory=list)
    migrations: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    priorities: List[str] = Field(default_factory=list)
    optimizations: List[str] = Field(default_factory=list)
    degraded: bool = Field(False, description="True when the synthesis call failed")


class FleetAnalysis(BaseModel):
    """The persisted summary of one analyze run."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    total_repositories: int = 0
    successful: List[AnalysisResult] = Field(default_factory=list)
    failed: List[RepositoryFailure] = Field(default_factory=list)
    consolidation_plan: ConsolidationPlan = Field(default_factory=ConsolidationPlan)

    def get(self, name: str) -> Optional[AnalysisResult]:
        for result in self.successful:
            if result.name == name:
                return result
        return None


class Opportunity(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OpportunityKind
    priority: Priority
    impact: str


class GeneratedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    content: str


class PullRequestRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    url: str
    title: str
    kind: OpportunityKind


class RemediationFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    repository: str
    opportunity: Optional[OpportunityKind] = None
    error: str


class RemediationEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    repository: str
    idempotency_key: str
    pull_request: PullRequestRecord


class RemediationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    repositories_considered: int = 0
    opportunities_selected: int = 0
    pull_requests: List[RemediationEntry] = Field(default_factory=list)
    suppressed: List[RemediationEntry] = Field(default_factory=list)
    failed: List[RemediationFailure] = Field(default_factory=list)


class StructuredResult(BaseModel):
    """Backend output that decoded into a JSON object."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["structured"] = "structured"
    data: Dict[str, Any] = Field(default_factory=dict)


class RawTextFallback(BaseModel):
    """Backend output that could not be decoded; the text is kept as-is."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["raw_text"] = "raw_text"
    raw_text: str = ""


ParsedResult = Union[StructuredResult, RawTextFallback]
