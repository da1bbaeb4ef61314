"""Tool catalog rendering for the CLI."""

from __future__ import annotations

import json
from collections.abc import Sequence

from pr_agent_tools.parameters import ToolDescriptor


def render_tool_catalog_markdown(descriptors: Sequence[ToolDescriptor]) -> str:
    """Render a markdown catalog of tools and their parameters."""
    lines = ["# Tools", ""]
    if not descriptors:
        lines.append("- No tools registered.")
        return "\n".join(lines)

    for descriptor in descriptors:
        lines.append(f"## `{descriptor.name}`")
        lines.append(descriptor.description or "No description provided.")
        lines.append("")
        if not descriptor.parameters:
            lines.append("- No parameters.")
        optional_names = {param.name for param in descriptor.optional_parameters}
        for param in descriptor.parameters:
            marker = "optional" if param.name in optional_names else "required"
            line = f"- `{param.name}` ({param.type.label}, {marker})"
            if param.description:
                line = f"{line}: {param.description}"
            lines.append(line)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def render_tool_catalog_json(
    descriptors: Sequence[ToolDescriptor],
    *,
    indent: int | None = 2,
) -> str:
    """Render function-calling schemas for every tool as JSON."""
    schemas = [descriptor.to_function_schema() for descriptor in descriptors]
    return json.dumps(schemas, indent=indent)
