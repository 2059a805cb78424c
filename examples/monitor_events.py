"""Print socket and LED changes pushed by a plug.

Switch a socket with the button on the plug or from the app to see events.

    DLINK_IP=192.168.0.20
    DLINK_PIN=123456
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

from pydlinkdsp import DLinkSmartPlug


def on_switched(on: bool, index: int) -> None:
    """Print a socket change."""
    print(f"Socket {index} switched {'ON' if on else 'OFF'}")


def on_led(on: bool, index: int) -> None:
    """Print an LED change."""
    print(f"LED {index} switched {'ON' if on else 'OFF'}")


async def main() -> None:
    """Sign in and listen until the connection closes."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    plug = DLinkSmartPlug(
        ip=os.getenv("DLINK_IP", "192.168.0.20"),
        pin=os.getenv("DLINK_PIN", ""),
        model=os.getenv("DLINK_MODEL", "w115"),
    )
    closed = asyncio.Event()
    plug.add_listener("switched", on_switched)
    plug.add_listener("switched-led", on_led)
    plug.add_listener("close", lambda code, reason: closed.set())

    async with plug:
        print("Listening for events (Ctrl+C to stop)...")
        await closed.wait()


if __name__ == "__main__":
    asyncio.run(main())
