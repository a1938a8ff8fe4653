# Protocol envelope models

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolCallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool: str = Field(min_length=1)
    input: Dict[str, Any] = Field(default_factory=dict)
    thread_id: Optional[str] = Field(default=None, alias="threadId")


class MCPTool(BaseModel):
    name: str
    description: str
    input_schema: Dict[str, Any] = Field(alias="inputSchema")

    model_config = ConfigDict(populate_by_name=True)


class MCPToolsListResponse(BaseModel):
    tools: List[MCPTool]


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str


class ReadinessResponse(BaseModel):
    ready: bool
    backends: Dict[str, str]
    sessions: int
    timestamp: str
