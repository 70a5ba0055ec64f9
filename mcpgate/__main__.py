# mcpgate/__main__.py
import argparse
import sys

from mcp.server.fastmcp.utilities.logging import get_logger

from mcpgate.server import Gateway

logger = get_logger("mcpgate")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mcpgate",
        description="MCP gateway serving integration tools over Server-Sent Events",
    )
    parser.add_argument("--host", type=str, default=None, help="Host address to bind to (default: MCPGATE_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Port number to listen on (default: MCPGATE_PORT or 3001)")
    parser.add_argument(
        "--environment",
        type=str,
        default=None,
        help="Deployment environment; 'development' allows ?user= authentication (default: MCPGATE_ENVIRONMENT)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Log level (default: MCPGATE_LOG_LEVEL or INFO)",
    )
    args = parser.parse_args(argv)

    try:
        gateway = Gateway(
            host=args.host,
            port=args.port,
            environment=args.environment,
            log_level=args.log_level,
        )
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    try:
        gateway.run()
        logger.info("Gateway shutdown complete")
    except KeyboardInterrupt:
        logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
