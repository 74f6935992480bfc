"""
agentkit entry point.

This file handles startup concerns (arg-parsing, logging) and launches the appropriate host
(HTTP API or interactive CLI).
"""

import argparse
import logging
import sys

from agentkit.config import settings
from agentkit.providers import available_providers

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Request-level httpx logging drowns out the agent's own lines
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the agentkit application.

    This function sets up the command-line interface, initializes logging, and starts either the
    API server or the interactive shell.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the agentkit tool-use agent")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="cli",
        help="Launch the REST API or the interactive shell (default: cli)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--provider",
        choices=available_providers(),
        type=str.lower,
        default=settings.PROVIDER,
        help="Model backend (default from env: %(default)s)",
    )
    parser.add_argument(
        "--model",
        default=settings.MODEL,
        help="Model name (default: the backend's default model)",
    )
    args = parser.parse_args(argv)

    # Command-line arguments override env settings for the whole process
    settings.LOG_LEVEL = args.log_level
    settings.PROVIDER = args.provider
    settings.MODEL = args.model

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting agentkit [%s mode, provider=%s]", args.mode, settings.PROVIDER)
    logger.debug(
        "Settings: %s",
        settings.model_dump(exclude={"OPENAI_API_KEY", "RESPONSES_API_KEY", "ANTHROPIC_API_KEY"}),
    )

    if args.mode == "api":
        # Lazy import to avoid web dependencies if not needed
        from agentkit.api.app import run_api  # pylint: disable=import-outside-toplevel

        run_api(port=settings.API_PORT, reload=settings.DEBUG)
    else:
        from agentkit.client.cli import run_cli  # pylint: disable=import-outside-toplevel

        run_cli()


if __name__ == "__main__":
    main()
