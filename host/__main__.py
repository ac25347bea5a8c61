"""
Run the host server.

    python -m host --port 8000
Or with uvicorn directly:
    uvicorn host.main:app --host 0.0.0.0 --port 8000
"""

import argparse

import uvicorn

from host.config import get_log_level


def main():
    parser = argparse.ArgumentParser(description="Salem moderator host server")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    uvicorn.run(
        "host.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="debug" if get_log_level() <= 10 else "info",
    )


if __name__ == "__main__":
    main()
