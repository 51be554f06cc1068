# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

import uvicorn

from resurrectci.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "resurrectci.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.value.lower(),
        reload=settings.is_development and settings.debug,
    )


if __name__ == "__main__":
    main()
