# main.py
import logging

import uvicorn

from .app_factory import create_app
from .settings import Settings

settings = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings)

if __name__ == "__main__":
    uvicorn.run("voicedesk.main:app", host=settings.host, port=settings.port)
