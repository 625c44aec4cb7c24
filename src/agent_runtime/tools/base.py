"""Tool interface and capability-driven parameter validation."""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from agent_runtime.errors import ValidationError
from agent_runtime.models.tools import (
    InferredParameters,
    ParameterDefinition,
    ParameterType,
    PermissionLevel,
    ToolCapability,
    ToolContext,
    ToolExecutionResult,
)

_TYPE_CHECKS = {
    ParameterType.STRING: lambda v: isinstance(v, str),
    ParameterType.NUMBER: lambda v: isinstance(v, int | float) and not isinstance(v, bool),
    ParameterType.BOOLEAN: lambda v: isinstance(v, bool),
    ParameterType.ARRAY: lambda v: isinstance(v, list),
    ParameterType.OBJECT: lambda v: isinstance(v, dict),
}


def elapsed_ms(start: float) -> int:
    """Milliseconds since ``start`` (a ``time.perf_counter()`` reading)."""
    return int((time.perf_counter() - start) * 1000)


def _check_value(definition: ParameterDefinition, value: Any) -> None:
    name = definition.name
    if not _TYPE_CHECKS[definition.param_type](value):
        raise ValidationError(f"Parameter '{name}' must be of type {definition.param_type.value}")

    rules = definition.validation
    if rules is None:
        return

    if definition.param_type == ParameterType.STRING:
        length = len(value.strip())
        if rules.min_length is not None and length < rules.min_length:
            raise ValidationError(
                f"Parameter '{name}' must be at least {rules.min_length} characters"
            )
        if rules.max_length is not None and len(value) > rules.max_length:
            raise ValidationError(
                f"Parameter '{name}' must be at most {rules.max_length} characters"
            )
        if rules.pattern is not None and not re.fullmatch(rules.pattern, value):
            raise ValidationError(f"Parameter '{name}' has an invalid format")

    if definition.param_type == ParameterType.NUMBER:
        if rules.min is not None and value < rules.min:
            raise ValidationError(f"Parameter '{name}' must be >= {rules.min:g}")
        if rules.max is not None and value > rules.max:
            raise ValidationError(f"Parameter '{name}' must be <= {rules.max:g}")

    if rules.allowed_values is not None:
        items = value if isinstance(value, list) else [value]
        for item in items:
            if item not in rules.allowed_values:
                allowed = ", ".join(str(v) for v in rules.allowed_values)
                raise ValidationError(
                    f"Invalid value '{item}' for parameter '{name}'. Allowed: {allowed}"
                )


def validate_against_capability(capability: ToolCapability, parameters: dict[str, Any]) -> None:
    """Check ``parameters`` against the tool's declared parameter definitions.

    Unknown parameters are ignored; models often add extra keys.
    """
    for definition in capability.required_parameters:
        value = parameters.get(definition.name)
        if value is None:
            raise ValidationError(f"Missing required parameter: {definition.name}")
        if isinstance(value, str) and not value.strip():
            raise ValidationError(f"Parameter '{definition.name}' cannot be empty")

    for name, value in parameters.items():
        definition = capability.parameter(name)
        if definition is None or value is None:
            continue
        _check_value(definition, value)


class Tool(ABC):
    """A capability the model can invoke by name.

    Subclasses set ``name`` and ``description`` and implement capability,
    inference, and execution. Validation defaults to the declared
    ParameterDefinitions; override to add cross-field rules.
    """

    name: str
    description: str

    @abstractmethod
    def capability(self) -> ToolCapability:
        """Static declaration of parameters, permissions, and examples."""

    @abstractmethod
    async def infer_parameters(self, context: ToolContext) -> InferredParameters:
        """Best-effort arguments derived from the user's message and context."""

    @abstractmethod
    async def execute(
        self, parameters: dict[str, Any], context: ToolContext
    ) -> ToolExecutionResult:
        """Run the tool. Repository failures are returned as unsuccessful results."""

    def validate_parameters(self, parameters: dict[str, Any]) -> None:
        validate_against_capability(self.capability(), parameters)

    def check_permissions(self, granted: Iterable[PermissionLevel]) -> bool:
        granted = set(granted)
        if PermissionLevel.FULL_ACCESS in granted:
            return True
        return set(self.capability().required_permissions) <= granted
