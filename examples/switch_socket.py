"""Switch a socket on a D-Link smart plug.

Reads the plug address and PIN from a ``.env`` file:

    DLINK_IP=192.168.0.20
    DLINK_PIN=123456
    DLINK_MODEL=w245
"""

import asyncio
import os

from dotenv import load_dotenv

from pydlinkdsp import DLinkSmartPlug


async def main() -> None:
    """Toggle the first socket and show the state of every socket."""
    load_dotenv()

    async with DLinkSmartPlug(
        ip=os.getenv("DLINK_IP", "192.168.0.20"),
        pin=os.getenv("DLINK_PIN", ""),
        model=os.getenv("DLINK_MODEL", "w115"),
    ) as plug:
        print(f"Signed in to device {plug.get_device_id()}")

        states = await plug.query_state(-1)
        print(f"Socket states: {states}")

        # Toggle socket 0
        new_state = await plug.switch_socket(not states[0], socket=0)
        print(f"Socket 0 is now {'ON' if new_state else 'OFF'}")

        print("Turning LED off...")
        await plug.switch_led(False)


if __name__ == "__main__":
    asyncio.run(main())
