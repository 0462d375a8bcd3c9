from pydantic import BaseModel
from typing import Any, Dict, List, Literal, Optional


class ChatRequest(BaseModel):
    message: str = ""
    conversation_id: Optional[str] = None


class ChatResponse(BaseModel):
    success: bool = True
    response: str
    conversation_id: str
    tools_used: List[str] = []
    timestamp: str


class ToolParamOut(BaseModel):
    name: str
    type: str
    description: str = ""
    required: bool = True
    default: Any = None
    enum: Optional[List[Any]] = None


class ToolOut(BaseModel):
    name: str
    description: str
    backend: str
    long_running: bool = False
    params: List[ToolParamOut] = []


class ToolsResponse(BaseModel):
    success: bool = True
    tools: List[ToolOut]
    count: int


class BackendStatus(BaseModel):
    id: str
    base_url: str
    reachable: bool
    tools_listed: bool
    tool_count: int
    last_error: str = ""
    last_checked: Optional[float] = None


class StatusResponse(BaseModel):
    backends: List[BackendStatus]
    tools: int
    conversations: int


class HistoryMessage(BaseModel):
    role: Literal["system", "user", "assistant", "system-note"]
    text: str
    seq: int


class HistoryResponse(BaseModel):
    conversation_id: str
    messages: List[HistoryMessage]


class ErrorMsg(BaseModel):
    error: str
    message: str
    details: Dict[str, Any] = {}


class ScrapeRequest(BaseModel):
    url: str = ""


class ScrapeResponse(BaseModel):
    success: bool = True
    tool: str
    scraped_data: Any = None
    timestamp: str
