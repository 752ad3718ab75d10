from typing import Optional, Any, Dict
from http import HTTPStatus

class ResolverException(Exception):
    """Base exception class for resolver errors"""
    def __init__(
        self,
        message: str,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        error_code: str = "RESOLVER_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "status": self.status_code,
                "details": self.details
            }
        }

class BadRequestError(ResolverException):
    """Raised on malformed input: missing URL, invalid request line"""
    def __init__(self, reason: str):
        super().__init__(
            message=reason,
            status_code=HTTPStatus.BAD_REQUEST,
            error_code="BAD_REQUEST",
            details={"reason": reason}
        )

class DriverUnavailableError(ResolverException):
    """Raised when the browser driver won't accept a session"""
    def __init__(self, webdriver_url: str, reason: str):
        super().__init__(
            message=f"Browser driver unavailable at {webdriver_url}",
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            error_code="DRIVER_UNAVAILABLE",
            details={
                "webdriver_url": webdriver_url,
                "reason": reason
            }
        )

class NavigationError(ResolverException):
    """Raised when the driver reports a failure during navigation or hydration"""
    def __init__(self, action: str, reason: str):
        super().__init__(
            message=f"Browser operation failed: {action}",
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            error_code="NAVIGATION_ERROR",
            details={
                "action": action,
                "reason": reason
            }
        )

class ChallengeTimeoutError(ResolverException):
    """Raised when a challenge did not clear within its time budget"""
    def __init__(self, kind: str, timeout: float):
        super().__init__(
            message=f"{kind} challenge timed out",
            status_code=HTTPStatus.REQUEST_TIMEOUT,
            error_code="CHALLENGE_TIMEOUT",
            details={
                "kind": kind,
                "timeout_seconds": timeout
            }
        )
        self.kind = kind

class UpstreamRefusedError(ResolverException):
    """Raised when the upstream proxy answers CONNECT with a non-200 status"""
    def __init__(self, status_line: str):
        super().__init__(
            message=f"Upstream proxy denied CONNECT: {status_line}",
            status_code=HTTPStatus.BAD_GATEWAY,
            error_code="UPSTREAM_REFUSED",
            details={"status_line": status_line}
        )

class BindError(ResolverException):
    """Raised when the proxy bridge cannot bind its listener"""
    def __init__(self, address: str, reason: str):
        super().__init__(
            message=f"Failed to bind {address}",
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            error_code="BIND_ERROR",
            details={
                "address": address,
                "reason": reason
            }
        )

class SolverUnconfiguredError(ResolverException):
    """Raised when the fallback solver is invoked without an API key"""
    def __init__(self):
        super().__init__(
            message="Scrappey API key not configured",
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            error_code="SOLVER_UNCONFIGURED"
        )

class SolverHttpError(ResolverException):
    """Raised on transport failure talking to the solver API"""
    def __init__(self, reason: str):
        super().__init__(
            message=f"Solver request failed: {reason}",
            status_code=HTTPStatus.BAD_GATEWAY,
            error_code="SOLVER_HTTP_ERROR",
            details={"reason": reason}
        )

class SolverParseError(ResolverException):
    """Raised when the solver API returns malformed JSON"""
    def __init__(self, reason: str):
        super().__init__(
            message=f"Failed to parse solver response: {reason}",
            status_code=HTTPStatus.BAD_GATEWAY,
            error_code="SOLVER_PARSE_ERROR",
            details={"reason": reason}
        )

class PersistenceError(ResolverException):
    """Raised when session data cannot be loaded or saved"""
    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Session data persistence failed: {path}",
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            error_code="PERSISTENCE_ERROR",
            details={
                "path": path,
                "reason": reason
            }
        )
