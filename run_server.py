#!/usr/bin/env python3
"""
Server startup script for the AI Citation Audit service
"""

import uvicorn

from config.settings import settings


def main():
    uvicorn.run(
        "src.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )


if __name__ == "__main__":
    main()
