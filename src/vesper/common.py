"""Common utility functions for the project."""

from enum import Enum
from typing import (
    Any,
    Dict,
    List,
)


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


def format_agent_reply(response: Dict[str, Any]) -> List[tuple[str, AnsiColors]]:
    """
    Lines to show for an ``/agent`` response, each with its color.

    Media links are listed after the text; failures show the error in red.
    """
    lines: List[tuple[str, AnsiColors]] = []
    if response.get("text"):
        lines.append((response["text"], AnsiColors.YELLOW))
    for key, label in (("image_url", "image"), ("video_url", "video"), ("audio_url", "audio")):
        if response.get(key):
            lines.append((f"[{label}] {response[key]}", AnsiColors.GREEN))
    if not response.get("success", True):
        prefix = "timeout: " if response.get("timeout") else ""
        lines.append((f"{prefix}{response.get('error') or 'request failed'}", AnsiColors.RED))
    if response.get("tools_used"):
        lines.append((f"tools: {', '.join(response['tools_used'])}", AnsiColors.BLUE))
    return lines
