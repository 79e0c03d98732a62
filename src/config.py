import os
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ANALYSIS_BACKEND = "analysis"
RESEARCH_BACKEND = "research"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

ANALYSIS_SYSTEM_PROMPT = (
    "You are a homelab infrastructure expert. Analyze the provided information "
    "and return structured JSON responses."
)
RESEARCH_SYSTEM_PROMPT = (
    "You are a homelab research assistant. Provide current trends and community "
    "insights in JSON format."
)


class BackendConfig(BaseModel):
    """Connection details for one chat-completions style backend."""
    model_config = ConfigDict(frozen=True)

    backend_id: str
    url: str
    api_key: str = ""
    model: str
    system_prompt: str = ""


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    github_token: str
    github_owner: str = "edcet"
    github_api_url: str = "https://api.github.com"
    backends: List[BackendConfig] = Field(default_factory=list)
    database_url: Optional[str] = None
    fleet_registry_path: Optional[str] = None
    intelligence_webhook_url: str = "https://homelab-intelligence.edcet.workers.dev"
    request_timeout: float = Field(60.0, gt=0, description="Seconds allowed for a single HTTP call")
    task_timeout: float = Field(180.0, gt=0, description="Seconds allowed for one fan-out branch")
    backend_max_retries: int = Field(2, ge=0)
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: LogLevel = "INFO"

    def backend_map(self) -> Dict[str, BackendConfig]:
        return {backend.backend_id: backend for backend in self.backends}

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """
        Builds settings from environment variables.

        Raises:
            ValueError: if GITHUB_TOKEN is missing or a value is out of range
                (pydantic.ValidationError is a ValueError).
        """
        env = os.environ if environ is None else environ

        github_token = env.get("GITHUB_TOKEN")
        if not github_token:
            raise ValueError("GITHUB_TOKEN is not set in the environment.")

        backends = [
            BackendConfig(
                backend_id=ANALYSIS_BACKEND,
                url=env.get("ANALYSIS_API_URL", "https://api.g4f.icu/v1/chat/completions"),
                api_key=env.get("ANALYSIS_API_KEY", ""),
                model=env.get("ANALYSIS_MODEL", "gpt-3.5-turbo"),
                system_prompt=ANALYSIS_SYSTEM_PROMPT,
            ),
            BackendConfig(
                backend_id=RESEARCH_BACKEND,
                url=env.get("RESEARCH_API_URL", "https://api.perplexity.ai/chat/completions"),
                api_key=env.get("RESEARCH_API_KEY", ""),
                model=env.get("RESEARCH_MODEL", "llama-3.1-sonar-small-128k-online"),
                system_prompt=RESEARCH_SYSTEM_PROMPT,
            ),
        ]

        return cls(
            github_token=github_token,
            github_owner=env.get("GITHUB_OWNER", "edcet"),
            github_api_url=env.get("GITHUB_API_URL", "https://api.github.com"),
            backends=backends,
            database_url=env.get("DATABASE_URL") or None,
            fleet_registry_path=env.get("FLEET_REGISTRY_PATH") or None,
            intelligence_webhook_url=env.get(
                "INTELLIGENCE_WEBHOOK_URL", "https://homelab-intelligence.edcet.workers.dev"
            ),
            request_timeout=float(env.get("REQUEST_TIMEOUT", 60)),
            task_timeout=float(env.get("TASK_TIMEOUT", 180)),
            backend_max_retries=int(env.get("BACKEND_MAX_RETRIES", 2)),
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", 8080)),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
