"""
Command-line interface for Kubelog.

This module provides the command-line interface for the Kubelog application,
handling argument parsing, input validation, logging setup and server startup.

Key Functions:
- build_parser: Create and configure the argument parser
- build_config: Validate parsed arguments into a ServerConfig
- main: Main entry point for the CLI application

Example:
    ```bash
    kubelog serve
    kubelog serve --context prod --port 9090 --tail-lines 500
    ```
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from .constants import (
    DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TAIL_LINES, DEFAULT_LOG_LEVEL,
    DEFAULT_UVICORN_LOG_LEVEL,
    ENV_HOST, ENV_PORT, ENV_LOG_LEVEL, ENV_UVICORN_LEVEL, ENV_TAIL_LINES
)
from .exceptions import ConfigurationError
from .models import ServerConfig
from .server import run_server, configure_logging
from .validation import validate_port, validate_host, validate_tail_lines, validate_log_level


def build_parser() -> argparse.ArgumentParser:
    """
    Build and configure the command-line argument parser.

    Environment variables supply defaults; flags override them.

    Environment Variables:
        KUBELOG_HOST: Default host to bind to (default: localhost)
        KUBELOG_PORT: Default port to bind to (default: 8080)
        KUBELOG_LOG_LEVEL: Application log level (default: INFO)
        KUBELOG_UVICORN_LEVEL: Uvicorn log level (default: info)
        KUBELOG_TAIL_LINES: Backfill lines for new log streams (default: 100)
        KUBECONFIG: kubeconfig path list (default: ~/.kube/config)

    Returns:
        argparse.ArgumentParser: Configured argument parser with all options
    """
    p = argparse.ArgumentParser("kubelog", description="Real-time Kubernetes pod log viewer backend")
    p.add_argument("command", choices=['serve'], help="Subcommand to run (only 'serve' supported)")
    p.add_argument("--kubeconfig", default=None, help="Path(s) to kubeconfig (env: KUBECONFIG)")
    p.add_argument("--context", default=None, help="Context to activate at startup (default: current-context)")
    p.add_argument("--host", default=os.getenv(ENV_HOST, DEFAULT_HOST), help=f"Host to bind (env: {ENV_HOST})")
    p.add_argument("--port", default=os.getenv(ENV_PORT, str(DEFAULT_PORT)), help=f"Port for HTTP server (env: {ENV_PORT})")
    p.add_argument("--tail-lines", default=os.getenv(ENV_TAIL_LINES, str(DEFAULT_TAIL_LINES)),
                   help=f"Lines of backfill for new log streams (env: {ENV_TAIL_LINES})")
    p.add_argument("--log-level", default=os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL),
                   help=f"Application log level (env: {ENV_LOG_LEVEL})")
    return p


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    Validate parsed arguments into a ServerConfig.

    Raises:
        ConfigurationError: If any value is invalid
    """
    try:
        port = int(args.port)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Port must be an integer between 1 and 65535, got: {args.port}")
    return ServerConfig(
        host=validate_host(args.host),
        port=validate_port(port),
        kubeconfig=args.kubeconfig,
        context=args.context,
        tail_lines=validate_tail_lines(args.tail_lines),
        log_level=validate_log_level(args.log_level),
        uvicorn_log_level=os.getenv(ENV_UVICORN_LEVEL, DEFAULT_UVICORN_LOG_LEVEL),
    )


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the Kubelog CLI application.

    Raises:
        SystemExit: On configuration errors (exit code 2) or server errors (exit code 1)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(config.log_level)

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
    except Exception as e:
        print(f"Server error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
