import asyncio
import functools
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from filedelivery.delivery import DeliveryRequest, FileDelivery
from filedelivery.info import settings
from filedelivery.utils.channels import QueueChannel
from filedelivery.utils.file_properties import resolve_path

logger = logging.getLogger("app")
handler = logging.StreamHandler()
handler.setFormatter(
    logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
)
logger.addHandler(handler)
logger.setLevel(settings.log_level)
logger.propagate = False

app = FastAPI()
app.state.delivery = FileDelivery.from_settings(settings)


def _log_outcome(reference: str, future: asyncio.Future):
    if future.cancelled():
        return

    error = future.exception()
    if error is not None:
        logger.error(f"Delivery of {reference} crashed: {error}")
        return

    outcome = future.result()
    logger.info(f"{reference}: {outcome.state.value} ({outcome.bytes_sent} bytes)")


@app.api_route("/download/{reference:path}", methods=["GET", "HEAD"])
async def download(
    reference: str,
    request: Request,
    name: Optional[str] = None,
    download: str = "1",
):
    delivery: FileDelivery = request.app.state.delivery

    file_path = resolve_path(reference, delivery.allowed_root or str(settings.root_dir))
    if file_path is None:
        raise HTTPException(status_code=404, detail="File not found")

    delivery_request = DeliveryRequest(
        file_path=file_path,
        display_filename=name,
        force_download=download != "0",
    )

    channel = QueueChannel(settings.queue_size, settings.write_timeout)
    loop = asyncio.get_running_loop()
    task = loop.run_in_executor(
        None,
        functools.partial(
            delivery.deliver,
            delivery_request,
            channel,
            range_header=request.headers.get("range"),
            send_body=request.method != "HEAD",
        ),
    )
    task.add_done_callback(functools.partial(_log_outcome, reference))

    try:
        status, headers = await run_in_threadpool(channel.wait_headers, settings.write_timeout)
    except TimeoutError:
        channel.close()
        logger.error(f"No response headers for {reference} after {settings.write_timeout}s")
        raise HTTPException(status_code=500, detail="Internal Server Error")
    except BaseException:
        # client gone or handler cancelled, stop the producer now
        channel.close()
        raise

    async def generator():
        try:
            while True:
                if await request.is_disconnected():
                    logger.info(f"Client left while streaming {reference}")
                    break

                chunk = await run_in_threadpool(channel.get)
                if chunk is None:
                    break
                yield chunk
        finally:
            channel.close()

    return StreamingResponse(
        generator(),
        status_code=status,
        headers=headers,
        # runs even when the body iterator was never started
        background=BackgroundTask(channel.close),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
