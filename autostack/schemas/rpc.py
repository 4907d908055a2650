"""JSON-RPC envelope helpers and tool payload schemas for the gateway."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class ToolDescriptor(BaseModel):
    """A tool advertised by a backend adapter."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ToolResult(BaseModel):
    """Outcome of a tool call; failures are flagged rather than raised."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    content: List[Dict[str, Any]] = Field(default_factory=list)
    is_error: bool = Field(False, alias="isError")

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls(content=[{"type": "text", "text": message}], is_error=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def response_id(envelope: Any) -> Any:
    """Return the id to echo; ``0`` and ``""`` are ids, only absence maps to null."""
    if isinstance(envelope, dict) and "id" in envelope:
        return envelope["id"]
    return None


def rpc_result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def rpc_error(
    request_id: Any, code: int, message: str, data: Optional[Any] = None
) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "JSONRPC_VERSION",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "ToolDescriptor",
    "ToolResult",
    "response_id",
    "rpc_error",
    "rpc_result",
]
