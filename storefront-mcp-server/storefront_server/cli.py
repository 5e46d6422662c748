"""Command-line interface for Storefront MCP Server."""

import argparse
import asyncio
import logging
import sys

from .config import Settings


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Storefront MCP Server - Multi-currency checkout and order tracking"
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="Server mode: stdio (for MCP clients) or http (REST API)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="HTTP server host (only for http mode, default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="HTTP server port (only for http mode, default: 8000)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the STOREFRONT_* settings and exit",
    )

    args = parser.parse_args(argv)

    # Before the server modules configure logging with their defaults
    logging.basicConfig(level=getattr(logging, args.log_level))

    settings = Settings.from_env()
    if args.check:
        if not settings.is_configured:
            print("Data service not configured: set STOREFRONT_DATA_URL and STOREFRONT_DATA_KEY")
            return 1
        print(f"Data service: {settings.data_url}")
        print(f"Order history: {settings.history_file}")
        return 0

    if not settings.is_configured:
        print(
            "Warning: STOREFRONT_DATA_URL and STOREFRONT_DATA_KEY are not set; "
            "data-backed tools will report an error",
            file=sys.stderr,
        )

    if args.mode == "stdio":
        # Run MCP server via stdio
        from .server import main as server_main

        asyncio.run(server_main())
    elif args.mode == "http":
        # Run HTTP server
        from .http_server import run_http_server

        print(f"Starting Storefront HTTP Server on {args.host}:{args.port}")
        print(f"API documentation available at http://{args.host}:{args.port}/docs")
        run_http_server(host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
