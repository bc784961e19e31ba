import asyncio

from run_server import RunServer
from run_status_client.errors import PollInterruptedError, PollTimeoutError
from run_status_client.models import PollPolicy
from run_status_client.run_status_client import RunClient


async def status_changed(run):
    print(f"\nStatus changed to: {run.status}")


async def main():
    PORT = 8000
    server = RunServer(completion_time=20.0, error_rate=0.1)
    server.add_run("run-42")
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    policy = PollPolicy(interval=1.0, max_duration=60.0, debug=True)
    client = RunClient(f"http://localhost:{PORT}", policy, on_status_change=status_changed)

    try:
        final_run = await client.follow_run("run-42")
        print(f"\nFinal status: {final_run.status}")
    except PollTimeoutError as e:
        print(f"Polling timed out: {e}")
    except PollInterruptedError as e:
        print(f"Interrupted, last seen status: {e.last_snapshot.status}")
    except Exception as e:
        print(f"Error occurred: {e}")
    finally:
        await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
