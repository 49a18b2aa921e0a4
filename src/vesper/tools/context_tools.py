"""Tools that read the agent context (never write it)."""

from typing import List

from vesper.core.schema import (
    AgentContext,
    ToolResult,
)
from vesper.tools import (
    FunctionTool,
    function_tool,
)

_KINDS = {
    "image": "images",
    "images": "images",
    "video": "videos",
    "videos": "videos",
    "audio": "audio",
}


@function_tool(
    "get_generated_assets",
    "List media created earlier in this conversation (latest last). Use it when the user refers "
    "to 'the image', 'that video' and similar.",
    params={
        "kind": {"description": "Which media to list", "enum": ["images", "videos", "audio"]},
        "limit": {"description": "How many of the most recent items to return (default 3)"},
    },
)
async def get_generated_assets(kind: str, context: AgentContext, limit: int = 3) -> ToolResult:
    key = _KINDS.get(kind.strip().lower())
    if key is None:
        return ToolResult.failure(f"Unknown asset kind '{kind}'")
    assets = getattr(context.generated_assets, key)[-max(limit, 1) :]
    if not assets:
        return ToolResult(
            success=True, data=f"No {key} were generated in this conversation", assets=[]
        )

    lines = []
    for i, asset in enumerate(assets, start=1):
        label = asset.caption or asset.prompt
        lines.append(f"{i}. {asset.url} ({label})" if label else f"{i}. {asset.url}")
    return ToolResult(
        success=True,
        data="\n".join(lines),
        assets=[asset.model_dump() for asset in assets],
    )


def context_tools() -> List[FunctionTool]:
    return [get_generated_assets]
