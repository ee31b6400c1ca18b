"""
Hub Service Launcher

Starts the AdminHub dashboard service (hub/ package).

This service provides:
- Live deployer health and per-application liveness (SSE, polling fallback)
- Host resource and managed-service monitoring
- Serialised lifecycle actions (checkout, build, verify, deploy, ...)

Usage:
    python scripts/run_hub_service.py --host 0.0.0.0 --port 5050

Environment Variables:
    ADMINHUB_API_URL: AdminHub API base URL (default: http://localhost:8089/api)
    ADMINHUB_TOKEN: Pre-issued bearer token
    ADMINHUB_EMAIL / ADMINHUB_PASSWORD: Login used at startup when no token is set
    ADMINHUB_BIND_HOST: Bind address (default: 0.0.0.0)
    ADMINHUB_PORT: Service port (default: 5050)
    ADMINHUB_LOG_LEVEL: Logging level (default: INFO)
    ADMINHUB_LOG_FILE: Optional log file
"""
import argparse
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import uvicorn

from hub import config
from shared.logging_config import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the AdminHub dashboard service")
    parser.add_argument("--host", default=config.BIND_HOST)
    parser.add_argument("--port", type=int, default=config.PORT)
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    parser.add_argument("--log-file", default=config.LOG_FILE)
    args = parser.parse_args()

    setup_logging("hub", level=args.log_level, log_file=args.log_file)

    print("=" * 60)
    print("AdminHub Dashboard Service")
    print("=" * 60)
    print(f"API: {config.API_BASE_URL}")
    print(f"Bind Address: {args.host}:{args.port}")
    print(f"Auth: {'token' if config.API_TOKEN else 'login' if config.LOGIN_EMAIL else 'none'}")
    print(f"Polling fallback: health {config.HEALTH_POLL_INTERVAL}s, "
          f"apps {config.APP_STATUS_POLL_INTERVAL}s, server {config.SERVER_POLL_INTERVAL}s")
    print("=" * 60)

    os.environ["ADMINHUB_BIND_HOST"] = args.host
    os.environ["ADMINHUB_PORT"] = str(args.port)

    uvicorn.run("hub.service:app", host=args.host, port=args.port, reload=False, log_config=None)


if __name__ == "__main__":
    main()
