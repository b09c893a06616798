import uvicorn
import os
import sys

# Add the current directory to sys.path to ensure animestream module can be found
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from animestream.core.config import settings

if __name__ == "__main__":
    # reload_dirs: Only watch animestream/ directory to avoid reloads from test file changes
    uvicorn.run(
        "animestream.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        reload_dirs=["animestream"]
    )
