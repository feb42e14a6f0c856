"""Run the device agent until interrupted: python -m app.client"""

import asyncio
import logging

from app.client.agent import DeviceAuthAgent
from app.client.config import AgentSettings

logger = logging.getLogger("app.client")


async def main() -> None:
    settings = AgentSettings()
    agent = DeviceAuthAgent(settings)
    try:
        if not await agent.start():
            if agent.state.requires_approval:
                resp = await agent.request_approval()
                logger.info("Awaiting approval: %s", resp.message)
            else:
                logger.error("Device not authorized: %s", agent.state.error)
            return
        await asyncio.Event().wait()
    finally:
        await agent.close()


def run() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
