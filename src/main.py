"""
Entry point: serves the web application with logging and error handling enabled.
"""

import argparse
import signal
import sys

from .observability.logging import LogLevel, logger
from .web_server import AppServer


def main():
    """Main entry point - starts the web server"""
    parser = argparse.ArgumentParser(description="Web application server")
    parser.add_argument("--host", help="Host address (overrides HOST)")
    parser.add_argument("--port", type=int, help="Port number (overrides PORT)")
    parser.add_argument(
        "--log-level",
        choices=[level.label for level in LogLevel],
        help="Minimum log level (overrides LOG_LEVEL)",
    )
    args = parser.parse_args()

    server = AppServer()
    if args.log_level:
        level = LogLevel.parse(args.log_level)
        logger.set_level(level)
        server.logger.set_level(level)

    def shutdown(signum, frame):
        server.logger.info("Shutdown signal received", {"signal": signum})
        server.stop_error_handling()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    server.run(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
