from typing import Any, Dict, Iterable

from src.domain.models import (
    ArchitectureFinding,
    CommunityFinding,
    ConsolidationPlan,
    HostMetadata,
    ParsedResult,
    SecurityFinding,
    StructuredResult,
)

PLAN_FIELDS = ("duplications", "consolidations", "migrations", "risks", "priorities", "optimizations")


def _fields(result: ParsedResult) -> Dict[str, Any]:
    # Raw-text answers carry no usable fields; every finding falls back to its defaults.
    if isinstance(result, StructuredResult):
        return result.data
    return {}


def _string_list(value: Any) -> Any:
    if isinstance(value, list):
        return [item if isinstance(item, str) else str(item) for item in value]
    return value


def _pick(data: Dict[str, Any], keys: Iterable[str], list_keys: Iterable[str] = ()) -> Dict[str, Any]:
    list_keys = set(list_keys)
    values: Dict[str, Any] = {}
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        values[key] = _string_list(value) if key in list_keys else value
    return values


class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST responses into domain models.
    """

    @staticmethod
    def to_metadata(raw_repo: Dict[str, Any]) -> HostMetadata:
        """
        Transforms a GitHub repository record into HostMetadata.

        Args:
            raw_repo (Dict[str, Any]): The JSON body of GET /repos/{owner}/{repo}.

        Returns:
            HostMetadata: The subset of the record the analyses use.
        """
        if not raw_repo.get("name"):
            raise ValueError("name is required to build HostMetadata.")
        return HostMetadata.model_validate(raw_repo)


class BackendTranslator:
    """
    Anti-corruption layer between free-form backend answers and findings.

    Missing fields take their defaults. A field that is present but of the
    wrong shape raises pydantic's ValidationError (a ValueError), so a finding
    is either complete or not produced at all.
    """

    @staticmethod
    def to_architecture(result: ParsedResult) -> ArchitectureFinding:
        data = _fields(result)
        values = _pick(
            data,
            ("patterns", "iac_approach", "integrations", "optimizations"),
            list_keys=("patterns", "integrations", "optimizations"),
        )
        risk = data.get("duplication_risk")
        if isinstance(risk, str):
            values["duplication_risk"] = risk.strip().lower()
        elif risk is not None:
            values["duplication_risk"] = risk
        return ArchitectureFinding.model_validate(values)

    @staticmethod
    def to_security(result: ParsedResult) -> SecurityFinding:
        data = _fields(result)
        values = _pick(
            data,
            ("secrets_management", "access_control", "vulnerabilities", "compliance_score", "recommendations"),
            list_keys=("vulnerabilities", "recommendations"),
        )
        return SecurityFinding.model_validate(values)

    @staticmethod
    def to_community(result: ParsedResult) -> CommunityFinding:
        data = _fields(result)
        list_keys = ("trends", "discussions", "similar_projects", "recommendations")
        values = _pick(data, list_keys, list_keys=list_keys)
        # Research answers sometimes use the long-form key.
        if "discussions" not in values and data.get("community_discussions") is not None:
            values["discussions"] = _string_list(data["community_discussions"])
        return CommunityFinding.model_validate(values)

    @staticmethod
    def to_plan(result: ParsedResult) -> ConsolidationPlan:
        """Maps a synthesis answer onto a plan; unusable fields become empty lists."""
        data = _fields(result)
        values = {}
        for key in PLAN_FIELDS:
            value = data.get(key)
            values[key] = _string_list(value) if isinstance(value, list) else []
        return ConsolidationPlan(**values)
