import logging
from typing import Optional

from aiohttp import web

from filedelivery.delivery import FileDelivery
from filedelivery.info import settings
from filedelivery.stream_routes import DELIVERY_KEY, routes

logger = logging.getLogger(__name__)


def create_app(delivery: Optional[FileDelivery] = None) -> web.Application:
    app = web.Application()
    app[DELIVERY_KEY] = delivery or FileDelivery.from_settings(settings)
    app.add_routes(routes)
    return app


def main():
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )

    app = create_app()
    logger.info(
        f"Serving {settings.root_dir} on {settings.host}:{settings.port} "
        f"(offload: {settings.offload_mechanism.value})"
    )
    web.run_app(app, host=settings.host, port=settings.port)
