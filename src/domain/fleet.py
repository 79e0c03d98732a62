import json
from pathlib import Path
from typing import Any, Dict

from src.domain.models import FleetRegistry, RepositoryDescriptor

# The managed constellation. Overridable through FLEET_REGISTRY_PATH.
DEFAULT_FLEET: Dict[str, Dict[str, str]] = {
    "complete-homelab-orchestrator": {
        "kind": "service-mesh",
        "primary_language": "TypeScript",
        "visibility": "public",
        "focus": "Pangolin/Newt/Gerbil/Badger optimization",
    },
    "homelab-production": {
        "kind": "infrastructure",
        "primary_language": "TypeScript",
        "visibility": "private",
        "focus": "Pulumi stack consolidation",
    },
    "r240-homelab-orchestrator": {
        "kind": "hardware-automation",
        "primary_language": "Shell",
        "visibility": "private",
        "focus": "Dell R240 Redfish optimization",
    },
    "protohome": {
        "kind": "ai-native",
        "primary_language": "Shell",
        "visibility": "public",
        "focus": "Zero-touch patterns",
    },
    "homelab-deploy": {
        "kind": "deployment",
        "primary_language": "TypeScript",
        "visibility": "public",
        "focus": "Deployment tooling consolidation",
    },
    "homeops": {
        "kind": "operations",
        "primary_language": "TypeScript",
        "visibility": "private",
        "focus": "Multi-cloud orchestration",
    },
    "homelab-gitops": {
        "kind": "gitops",
        "primary_language": "Shell",
        "visibility": "private",
        "focus": "GitOps workflow optimization",
    },
    "homelab-zenith-86": {
        "kind": "infrastructure-advanced",
        "primary_language": "TypeScript",
        "visibility": "private",
        "focus": "Advanced pattern consolidation",
    },
}


def build_registry(entries: Dict[str, Dict[str, Any]]) -> FleetRegistry:
    """Builds a registry from a name -> descriptor-fields mapping."""
    return FleetRegistry(
        repositories={
            name: RepositoryDescriptor(name=name, **fields)
            for name, fields in entries.items()
        }
    )


def default_fleet() -> FleetRegistry:
    return build_registry(DEFAULT_FLEET)


def load_fleet(path: str) -> FleetRegistry:
    """
    Loads a registry from a JSON file shaped like DEFAULT_FLEET.

    Raises:
        ValueError: if the file does not hold a JSON object.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Fleet registry {path} must be a JSON object keyed by repository name.")
    return build_registry(raw)
