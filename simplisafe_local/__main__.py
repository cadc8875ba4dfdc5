#
# Copyright 2025 The SimpliSafeLocal contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""Command-line interface for SimpliSafe Local."""

import asyncio
import argparse
import logging
import logging.handlers
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from .account import load_account_factory
from .bridge import AccessoryBridge
from .config import PlatformConfig
from .hap import DEFAULT_HAP_PORT, HapServer
from .platform import PlatformController
from .routes import create_app, register_routes
from .store import AccessoryStore

# Logger will be configured in main() based on daemon/console mode
logger = logging.getLogger(__name__)

controller: Optional[PlatformController] = None
server: Optional[uvicorn.Server] = None


def uvicorn_log_config(args) -> dict:
    """uvicorn logging matching the mode the process logs in."""
    if args.syslog:
        # Syslog mode: no uvicorn handlers, propagate to the root logger
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "loggers": {
                "uvicorn": {"handlers": [], "level": "INFO", "propagate": True},
                "uvicorn.error": {"handlers": [], "level": "INFO", "propagate": True},
                "uvicorn.access": {"handlers": [], "level": "WARNING", "propagate": True},
            },
        }

    if args.daemon:
        # No timestamps, syslog adds them
        formatter = {"format": "%(levelname)-8s %(message)s"}
    else:
        formatter = {"format": "%(asctime)s %(levelname)s %(message)s", "datefmt": "%Y-%m-%d %H:%M:%S"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter, "access": dict(formatter)},
        "handlers": {
            "default": {"formatter": "default", "class": "logging.StreamHandler", "stream": "ext://sys.stdout"},
            "access": {"formatter": "access", "class": "logging.StreamHandler", "stream": "ext://sys.stdout"},
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
        },
    }


async def run_server(args, config: PlatformConfig):
    """Run the HomeKit bridge, the platform and the status API."""
    global controller, server

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        if server:
            server.should_exit = True

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    hap_server: Optional[HapServer] = None
    bridge: Optional[AccessoryBridge] = None
    try:
        db_path = Path(os.path.expanduser(args.state))
        try:
            store = AccessoryStore(str(db_path))
        except Exception as e:
            logger.error(f"Database migration check failed: {e}")
            raise

        account = load_account_factory(args.account)(config)

        hap_server = HapServer(config.name, port=args.hap_port,
                               persist_file=str(db_path.with_suffix('.hap.state')),
                               loop=asyncio.get_running_loop())
        bridge = AccessoryBridge(store, hap_server)
        # Expose cached accessories before the HAP server starts advertising
        bridge.cached_accessories()
        await hap_server.start()

        controller = PlatformController(config, account, bridge)
        startup = asyncio.create_task(controller.start())

        app = create_app()
        register_routes(app, lambda: controller)

        logger.info("*** SimpliSafe Local ready! ***")
        logger.info(f"HomeKit bridge port: {args.hap_port}")
        logger.info(f"Status API: http://0.0.0.0:{args.port}/status")

        uv_config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=args.port,
            log_config=uvicorn_log_config(args),
            access_log=True
        )
        server = uvicorn.Server(uv_config)
        await server.serve()

        if not startup.done():
            startup.cancel()
        await asyncio.gather(startup, return_exceptions=True)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down gracefully...")
    except Exception as e:
        logger.error(f"ERROR: Failed to start SimpliSafe Local: {e}")
        raise
    finally:
        if controller:
            await controller.stop()
        if hap_server:
            await hap_server.stop()

        if args.pid_file:
            pid_path = Path(args.pid_file)
            try:
                if pid_path.exists():
                    pid_path.unlink()
                    logger.info(f"PID file removed: {pid_path}")
            except Exception as e:
                logger.warning(f"Failed to remove PID file: {e}")


def configure_logging(args):
    """Console, daemon or syslog logging, as selected on the command line."""
    if args.syslog:
        syslog_address = args.syslog
        if ':' in syslog_address and not syslog_address.startswith('/'):
            host, port = syslog_address.rsplit(':', 1)
            syslog_address = (host, int(port))

        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=syslog_address,
                facility=logging.handlers.SysLogHandler.LOG_DAEMON
            )
            syslog_handler.setFormatter(logging.Formatter(
                'simplisafe-local[%(process)d]: %(levelname)s %(message)s'
            ))
            root_logger = logging.getLogger()
            root_logger.setLevel(logging.INFO)
            root_logger.handlers = [syslog_handler]
            logger.info("Logging to syslog: %s", args.syslog)
        except Exception as e:
            logging.basicConfig(
                level=logging.INFO,
                format='%(asctime)s %(levelname)s %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S',
                stream=sys.stdout,
                force=True
            )
            logger.error(f"Failed to connect to syslog ({args.syslog}): {e}")
            logger.info("Falling back to console logging")
    elif args.daemon:
        logging.basicConfig(
            level=logging.INFO,
            format='%(levelname)s %(message)s',
            stream=sys.stdout,
            force=True
        )
    else:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s %(levelname)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
            stream=sys.stdout,
            force=True
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SimpliSafe Local - HomeKit bridge for SimpliSafe 3 security systems",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the bridge with an account implementation
  simplisafe-local --config ~/simplisafe.json --account mypkg.simplisafe:create_account

  # Run as system daemon
  simplisafe-local --config /etc/simplisafe.json --account mypkg.simplisafe:create_account \\
      --daemon --pid-file /var/run/simplisafe-local.pid

  # Send logs to remote syslog server
  simplisafe-local --config ~/simplisafe.json --account mypkg.simplisafe:create_account --syslog logserver.local:514

API Endpoints:
  GET  /status         - Platform and rate limit status
  GET  /devices        - Known SimpliSafe devices
  GET  /accessories    - Bound and unreachable accessories
  POST /refresh        - Refresh device state now
        """
    )
    parser.add_argument("--config", default="~/.simplisafe-local.json",
                        help="Path to the JSON platform config (default: ~/.simplisafe-local.json)")
    parser.add_argument("--state", default="~/.simplisafe-local.db",
                        help="Path to state database (default: ~/.simplisafe-local.db)")
    parser.add_argument("--account", required=True,
                        help="Account service factory as module:callable, called with the platform config")
    parser.add_argument("--port", type=int, default=4408,
                        help="Port for the status API (default: 4408)")
    parser.add_argument("--hap-port", type=int, default=DEFAULT_HAP_PORT,
                        help=f"Port for the HomeKit accessory server (default: {DEFAULT_HAP_PORT})")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable verbose logging (DEBUG level)")
    parser.add_argument("--daemon", action="store_true",
                        help="Run in daemon mode (structured logging for syslog, auto-enables --pid-file)")
    parser.add_argument("--syslog",
                        help="Send logs to syslog instead of stdout (e.g., /dev/log, localhost:514, or remote.server:514)")
    parser.add_argument("--pid-file",
                        help="Write process ID to specified file (useful for daemon mode)")
    return parser


def main():
    """Main entry point for the CLI."""
    args = build_parser().parse_args()

    # Daemon mode implies PID file if not specified
    if args.daemon and not args.pid_file:
        args.pid_file = "/var/run/simplisafe-local.pid" if sys.platform != "win32" else "simplisafe-local.pid"

    configure_logging(args)

    config_path = Path(os.path.expanduser(args.config))
    try:
        config = PlatformConfig.from_file(str(config_path)) if config_path.exists() else PlatformConfig()
    except ValueError as e:
        logger.error(f"Invalid config {config_path}: {e}")
        sys.exit(1)

    if args.verbose or config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.info("Verbose logging enabled")

    if args.pid_file:
        pid_path = Path(args.pid_file)
        try:
            pid_path.write_text(str(os.getpid()))
            logger.info(f"PID file written: {pid_path}")
        except Exception as e:
            logger.error(f"Failed to write PID file: {e}")
            sys.exit(1)

    try:
        asyncio.run(run_server(args, config))
    except KeyboardInterrupt:
        logger.info("*** Shutdown complete ***")
    except Exception as e:
        logger.error(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
