"""Built-in tools and the registry that advertises them.

Each tool pairs a ``ParameterSchema`` with a frozen params dataclass and an
invocation class:

    tool = registry.get_tool("read_file")
    invocation = tool.build({"file_path": "README.md"})
    result = await invocation.execute(signal)
"""

from __future__ import annotations

from agentloop.services.tools.registry import ToolRegistry, build_registry

__all__ = ["ToolRegistry", "build_registry"]
