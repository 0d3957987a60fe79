"""Serve the workout insight API with uvicorn using the configured host and port."""
import sys
from pathlib import Path

import uvicorn

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from workout_insight.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "workout_insight.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
