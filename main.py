"""
BoltGraph server entry point.

    python main.py
    uvicorn app:app --port 8000

Engine settings come from BOLT_* variables (see boltgraph.config); this
module only picks the bind address and reload mode.
"""

import os

import uvicorn


def main() -> None:
    reload = os.getenv("BOLT_RELOAD", "false").lower() in ("true", "1", "yes")
    uvicorn.run(
        "app:app",
        host=os.getenv("BOLT_HOST", "127.0.0.1"),
        port=int(os.getenv("BOLT_PORT", "8000")),
        reload=reload,
        log_level=os.getenv("BOLT_LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
