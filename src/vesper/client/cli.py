"""CLI client for Vesper API."""

import logging
import time
import uuid
from typing import (
    Any,
    Dict,
    Tuple,
    cast,
)

import httpx

from vesper.common import (
    AnsiColors,
    colored_print,
    format_agent_reply,
)
from vesper.config import settings

logger = logging.getLogger(__name__)

# Agent runs can take minutes (video generation); leave headroom over the agent deadline.
_REQUEST_TIMEOUT = settings.AGENT_TIMEOUT_MS / 1000 + 30.0


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(
    method: str, endpoint: str, data: Dict[str, Any] | None = None, max_retries: int = 5
) -> Dict[str, Any]:
    """Make a request to the API and return the JSON response, retrying while it starts up."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=_REQUEST_TIMEOUT) as client:
                response = client.request(method, api_url, json=data)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            break
        except httpx.HTTPStatusError as e:
            logger.error("API request error: %s", str(e))
            try:
                detail = e.response.json().get("detail", str(e))
            except ValueError:
                detail = str(e)
            return {"success": False, "error": f"API error: {detail}"}
        except httpx.HTTPError as e:
            logger.error("API request error: %s", str(e))
            return {"success": False, "error": f"Error connecting to API: {str(e)}"}

    return {"success": False, "error": f"Failed to connect to API after {max_retries} attempts"}


def run_cli(chat_id: str | None = None) -> None:
    """Run the CLI client that communicates with the API."""
    chat_id = chat_id or f"cli-{uuid.uuid4().hex[:8]}"
    colored_print(
        f"\nVesper shell [{chat_id}] - type 'exit' or 'quit' (or Ctrl+C) to exit, "
        "'/clear' to forget the conversation",
        AnsiColors.GREEN,
    )
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if not user_msg:
            continue
        if user_msg.lower() in {"exit", "quit"}:
            break
        if user_msg.lower() == "/clear":
            response = call_api("DELETE", f"/context/{chat_id}")
            colored_print(
                "Context cleared." if response.get("cleared") else "Nothing to clear.",
                AnsiColors.YELLOW,
            )
            continue

        response = call_api("POST", "/agent", {"message": user_msg, "chat_id": chat_id})
        for line, color in format_agent_reply(response):
            colored_print(line, color)


if __name__ == "__main__":
    run_cli()
