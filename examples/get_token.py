"""Read the device token and model of a plug over telnet.

Once a plug has been paired with the mydlink app the printed PIN no longer
works. The current device token can be read over telnet instead, which has
to be enabled on the plug.

    DLINK_IP=192.168.0.20
"""

import asyncio
import os

from dotenv import load_dotenv

from pydlinkdsp import DLinkSmartPlug
from pydlinkdsp.exceptions import DLinkConnectionError, ExtractionError


async def main() -> None:
    """Print device info and token, then sign in with the token."""
    load_dotenv()
    plug = DLinkSmartPlug(ip=os.getenv("DLINK_IP", "192.168.0.20"))

    try:
        info = await plug.get_device_info_from_telnet()
        token = await plug.get_token_from_telnet()
    except DLinkConnectionError as err:
        print(f"Telnet not reachable: {err}")
        return
    except ExtractionError as err:
        print(f"Could not read device config: {err}")
        return

    print(f"Model: {info.model} (firmware {info.firmware_version})")
    print(f"MAC: {info.mac}")
    print(f"Device token: {token}")

    async with plug:
        print(f"Socket states: {await plug.query_state(-1)}")


if __name__ == "__main__":
    asyncio.run(main())
