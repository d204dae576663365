"""Process entry point: ``gunicorn storefront.wsgi:app`` or ``python -m storefront.wsgi``."""

from .app import create_app
from .config import Config

config = Config.from_env()
app = create_app(config)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=config.port)
