"""CLI client for the promptloom API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Tuple,
    cast,
)

import httpx

from promptloom.common import (
    AnsiColors,
    colored_print,
)
from promptloom.config import settings

logger = logging.getLogger(__name__)


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
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        return response.text
    if isinstance(detail, dict):
        return str(detail.get("error", detail))
    return str(detail)


def call_api(
    endpoint: str, data: Dict[str, Any], max_retries: int = 5, timeout: float = 120.0
) -> Dict[str, Any]:
    """Make a POST request to the API and return the response with retries."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(api_url, json=data)
        except httpx.ConnectError as e:
            # The API may still be starting; back off and retry
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            logger.error("API connection error: %s", str(e))
            return {"error": f"Error connecting to API: {str(e)}"}
        except httpx.HTTPError as e:
            logger.error("API request error: %s", str(e))
            return {"error": f"Error connecting to API: {str(e)}"}

        if response.is_error:
            return {"error": f"API error: {_error_detail(response)}"}
        return cast(Dict[str, Any], response.json())

    return {"error": f"Failed to connect to API after {max_retries} attempts"}


def run_cli() -> None:
    """Run the CLI client that sends math problems to the API."""
    colored_print(
        "\npromptloom math shell - describe a math problem, or type 'exit' or 'quit' (or Ctrl+C)",
        AnsiColors.GREEN,
    )
    while True:
        colored_print("\nProblem: ", AnsiColors.BLUE, end="")
        problem, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if problem.lower() in {"exit", "quit"}:
            break
        if not problem:
            continue

        response = call_api(
            "/functions/Math.PerformMath/invoke", {"variables": {"math_problem": problem}}
        )
        if "error" in response:
            colored_print(response["error"], AnsiColors.RED)
            continue
        colored_print(str(response.get("value")), AnsiColors.YELLOW)


if __name__ == "__main__":
    run_cli()
