import asyncio
import logging

from swaggerdiff_client import SwaggerDiffClient

log = logging.getLogger("swaggerdiff.examples")
logging.basicConfig(level=logging.INFO)


async def main() -> None:
    async with SwaggerDiffClient("http://localhost:8000") as client:
        versions = await client.versions()
        log.info("available snapshots: %s", versions)
        if len(versions) < 2:
            log.info("need at least two snapshots; run `swaggerdiff snapshot` after changing the API")
            return
        # newest first
        html = await client.compare(versions[1], versions[0], comparison_type="breaking")
        log.info("%s", html if html is not None else "diff failed")


if __name__ == "__main__":
    asyncio.run(main())
