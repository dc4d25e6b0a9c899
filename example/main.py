import asyncio

from validation_server import ValidationServer
from bagpack_validate_client.bagpack_validate_client import BagPackValidateClient
from bagpack_validate_client.errors import ValidationClientError
from bagpack_validate_client.models import StatusPollingConfig


async def status_changed(status):
    print(f"Status changed to: {status.label}")
    print(f"Elapsed time: {status.elapsed_time:.6f}s")


async def main():
    PORT = 20375
    server = ValidationServer(completion_time=5.0)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    client = BagPackValidateClient(
        f"http://localhost:{PORT}",
        StatusPollingConfig(interval=1.0),
        on_status_change=status_changed,
    )

    try:
        outcome = await client.validate("/data/bags/example-bag")
        print(f"Status URL: {outcome.locator}")
        print(f"Result: {outcome.result}")
    except ValidationClientError as e:
        print(f"Validation failed: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
