import asyncio

from typed_grpc.core.config import settings
from typed_grpc.core.logging_config import configure_logging, get_logger
from typed_grpc.examples.hello_world import build_service
from typed_grpc.server import Server


logger = get_logger(__name__)


async def main() -> None:
    configure_logging()
    server = Server([build_service()], settings.grpc)
    logger.info("grpc_starting", address=settings.grpc.address)
    await server.start()
    try:
        await server.wait_for_termination()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("grpc_stopping")
    finally:
        await server.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
