from __future__ import annotations

from typing import Any


class ScenePatchError(Exception):
    code = "scene_patch_error"

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.path is not None:
            payload["path"] = self.path
        return payload


class ValidationError(ScenePatchError):
    code = "validation_error"


class SchemaValidationError(ValidationError):
    code = "schema_validation_error"


class StructuralError(ScenePatchError):
    code = "structural_error"


class TypeMismatchError(ScenePatchError):
    code = "type_error"


class IdentityError(ScenePatchError):
    code = "identity_error"


class ApplyError(ScenePatchError):
    code = "apply_error"


class TransactionClosedError(ApplyError):
    code = "transaction_closed"


class UnknownTool(ScenePatchError):
    code = "unknown_tool"


class ToolExecutionError(ScenePatchError):
    code = "tool_execution_error"
