"""
Entry point: ``python -m exhibit_api`` or the ``exhibit-api`` script.
"""
import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "exhibit_api.main:app",
        host=os.getenv("EXHIBIT_HOST", "0.0.0.0"),
        port=int(os.getenv("EXHIBIT_PORT", "8000")),
        reload=os.getenv("EXHIBIT_RELOAD", "false").lower() == "true",
        log_level=os.getenv("EXHIBIT_LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
