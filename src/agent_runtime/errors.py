"""Error taxonomy for the agent runtime.

Every error the runtime raises derives from ServiceError so callers can
catch one type and still branch on ``error_type`` / ``code``.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for all runtime errors."""

    error_type = "internal_error"
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_response(self) -> dict:
        return {
            "error_type": self.error_type,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidRequestError(ServiceError):
    error_type = "invalid_request"
    code = "INVALID_REQUEST"


class PermissionDeniedError(ServiceError):
    error_type = "permission_denied"
    code = "PERMISSION_DENIED"

    def __init__(self, tool_name: str, required: list[str]) -> None:
        self.tool_name = tool_name
        self.required = list(required)
        super().__init__(
            f"You don't have permission to use the '{tool_name}' tool. "
            f"Required permissions: {', '.join(self.required)}",
            {"tool": tool_name, "required_permissions": self.required},
        )


class ToolNotFoundError(ServiceError):
    error_type = "tool_not_found"
    code = "TOOL_NOT_FOUND"

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' not found", {"tool": tool_name})


class ValidationError(ServiceError):
    error_type = "validation_error"
    code = "VALIDATION_ERROR"


class ProviderUnavailableError(ServiceError):
    error_type = "provider_unavailable"
    code = "PROVIDER_UNAVAILABLE"

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        super().__init__(
            message or f"Provider '{provider}' is not available",
            {"provider": provider},
        )


class NoHealthyProvidersError(ProviderUnavailableError):
    error_type = "no_healthy_providers"
    code = "NO_HEALTHY_PROVIDERS"

    def __init__(self, message: str = "No healthy providers available") -> None:
        super().__init__("*", message)


class LLMError(ServiceError):
    error_type = "llm_error"
    code = "LLM_ERROR"

    def __init__(self, message: str, llm_code: str | None = None) -> None:
        super().__init__(message, {"llm_code": llm_code} if llm_code else None)
        self.llm_code = llm_code


class RepositoryError(ServiceError):
    error_type = "repository_error"
    code = "REPOSITORY_ERROR"


class ConfigError(ServiceError):
    error_type = "config_error"
    code = "CONFIG_ERROR"


class InternalError(ServiceError):
    pass
