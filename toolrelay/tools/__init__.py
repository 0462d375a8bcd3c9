"""Tool system — catalog, router, executor."""
from .catalog import ToolCatalog, ToolDescriptor, ToolParam, ToolCall, ToolResult
from .router import route as route_intent
from .executor import dispatch_all, execute_tool, normalize
