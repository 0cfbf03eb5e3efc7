import asyncio
import functools
import logging
import time

from aiohttp import web

from filedelivery import StartTime, __version__
from filedelivery.delivery import DeliveryRequest, FileDelivery
from filedelivery.info import settings
from filedelivery.utils.channels import AiohttpChannel
from filedelivery.utils.file_properties import resolve_path

routes = web.RouteTableDef()

DELIVERY_KEY = web.AppKey("delivery", FileDelivery)

# ----------------------------
# Logger
# ----------------------------
logger = logging.getLogger("stream_routes")
handler = logging.StreamHandler()
handler.setFormatter(
    logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
)
logger.addHandler(handler)
logger.setLevel(settings.log_level)
logger.propagate = False


def get_readable_time(seconds: float) -> str:
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    parts = [f"{value}{unit}" for value, unit in ((days, "d"), (hours, "h"), (minutes, "m")) if value]
    parts.append(f"{seconds}s")
    return " ".join(parts)


# ----------------------------------------------------------
# Root status route
# ----------------------------------------------------------
@routes.get("/", allow_head=True)
async def root_route_handler(request: web.Request):
    delivery: FileDelivery = request.app[DELIVERY_KEY]

    return web.json_response(
        {
            "server_status": "running",
            "uptime": get_readable_time(time.time() - StartTime),
            "root_dir": str(delivery.allowed_root),
            "offload": delivery.dispatcher.mechanism.value,
            "version": __version__,
        }
    )


# ----------------------------------------------------------
# File route (serves bytes with Range support)
# ----------------------------------------------------------
@routes.get(r"/{path:.+}", allow_head=True)
async def file_route_handler(request: web.Request):
    delivery: FileDelivery = request.app[DELIVERY_KEY]
    reference = request.match_info["path"]

    file_path = resolve_path(reference, delivery.allowed_root or str(settings.root_dir))
    if file_path is None:
        raise web.HTTPNotFound(text="File not found")

    try:
        delivery_request = DeliveryRequest(
            file_path=file_path,
            display_filename=request.rel_url.query.get("name"),
            force_download=request.rel_url.query.get("download", "1") != "0",
        )
    except ValueError as e:
        raise web.HTTPBadRequest(text=str(e))

    return await file_streamer(request, delivery, delivery_request)


# ----------------------------------------------------------
# Core streaming logic
# ----------------------------------------------------------
async def file_streamer(request: web.Request, delivery: FileDelivery, delivery_request: DeliveryRequest):
    """
    Run the blocking delivery call on the default executor, bridged to
    this request's response through an AiohttpChannel.
    """

    loop = asyncio.get_running_loop()
    channel = AiohttpChannel(request, loop)

    try:
        outcome = await loop.run_in_executor(
            None,
            functools.partial(
                delivery.deliver,
                delivery_request,
                channel,
                range_header=request.headers.get("Range"),
                send_body=request.method != "HEAD",
            ),
        )
    except ConnectionResetError:
        logger.info(f"Client {request.remote} went away")
        return channel.response or web.Response(status=500, text="Stream interrupted")

    except Exception as e:
        logger.error(f"Error in file_streamer: {e}")
        if channel.headers_sent and channel.response is not None:
            return channel.response
        return web.Response(status=500, text="Internal Server Error")

    logger.info(
        f"{request.remote} {request.method} {delivery_request.display_filename}: "
        f"{outcome.state.value} ({outcome.bytes_sent} bytes)"
    )
    return channel.response
