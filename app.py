import logging

from protector.config import Settings
from protector.server import create_app

settings = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings)


if __name__ == "__main__":
    # threaded dev server; use gunicorn app:app with a single worker in production
    # so every request sees the same rate-limit counters
    app.run(host="0.0.0.0", port=settings.port, threaded=True)
