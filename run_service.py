#!/usr/bin/env python3
"""
Run the quote intake service.
"""

import uvicorn

from quote_intake.config import get_settings

if __name__ == "__main__":
    settings = get_settings()

    print("Starting Quote Intake Service")
    print(f"   Version: {settings.app_version}")
    print(f"   Port: {settings.api_port}")
    print(f"   Debug: {settings.debug}")
    print(f"   Docs: http://{settings.api_host}:{settings.api_port}/docs")
    print()

    uvicorn.run(
        "quote_intake.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
