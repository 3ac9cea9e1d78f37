import os

import uvicorn

from agenda.core.config import get_settings

if __name__ == "__main__":
    # Settings are loaded first so a bad .env fails before the server binds.
    settings = get_settings()
    uvicorn.run(
        "agenda.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", 8000)),
        reload=os.getenv("APP_ENV", "development") == "development",
        log_level=settings.log_level.lower(),
    )
