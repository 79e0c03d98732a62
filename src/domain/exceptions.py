from typing import Optional


class IntelligenceException(Exception):
    """Base exception for all fleet-intelligence errors."""
    pass

class BackendException(IntelligenceException):
    """Raised when an analysis/research backend cannot produce a result."""
    def __init__(self, backend_id: str, message: str = "Backend call failed."):
        self.backend_id = backend_id
        super().__init__(f"{message} Backend: {backend_id}")

class ServiceUnavailableException(BackendException):
    """Raised when a backend answers with a non-2xx status or cannot be reached."""
    def __init__(self, backend_id: str, status_code: Optional[int] = None):
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else "no response"
        super().__init__(backend_id, f"Backend unavailable ({detail}).")

class BackendAuthFailureException(ServiceUnavailableException):
    """Raised when a backend rejects the bearer credential (401/403)."""
    pass

class HostException(IntelligenceException):
    """Base exception for version-control host API errors."""
    pass

class HostUnreachableException(HostException):
    """Raised when a host API call fails (transport error or unexpected status)."""
    def __init__(self, operation: str, status_code: Optional[int] = None, message: str = ""):
        self.operation = operation
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else "no response"
        suffix = f": {message}" if message else ""
        super().__init__(f"GitHub API error during {operation} ({detail}){suffix}")

class RefAlreadyExistsException(HostUnreachableException):
    """Raised when a branch cannot be created because the ref already exists."""
    def __init__(self, ref: str):
        self.ref = ref
        super().__init__("create_ref", 422, f"reference {ref} already exists")

class ResourceNotFoundException(HostException):
    """Signals that a file does not exist at the requested ref."""
    def __init__(self, path: str, ref: str):
        self.path = path
        self.ref = ref
        super().__init__(f"{path} not found at {ref}")

class ResultStoreException(IntelligenceException):
    """Raised when the result store cannot persist or load a fleet analysis."""
    pass

class AnalysisUnavailableException(IntelligenceException):
    """Raised when remediation is requested but no fleet analysis exists yet."""
    def __init__(self, message: str = "No fleet analysis available; run /analyze first."):
        super().__init__(message)
