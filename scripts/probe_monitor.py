#!/usr/bin/env python
"""
Probe a live NATS monitoring listener.

Run with: python scripts/probe_monitor.py [base_url]
"""

import asyncio
import sys

import structlog

from natstop.core.logging import configure as configure_logging
from natstop.monitor.client import MonitorClient

configure_logging()
logger = structlog.get_logger()


async def main(base_url: str) -> None:
    """Fetch /varz and /connz once and print what was decoded."""
    logger.info(f"Probing {base_url}...")

    params = {"limit": "10", "sort": "msgs_to", "subs": "1"}
    async with MonitorClient(base_url, connz_params=params) as client:
        try:
            varz = await client.request_varz()
            page = await client.request_connz()

        except Exception as e:
            logger.error(f"Probe failed: {e}", exc_info=True)
            raise

    print(f"\n--- Server {varz.name or varz.id} ---")
    print(f"Version: {varz.version}, Uptime: {varz.uptime}")
    print(f"Now: {varz.now.isoformat()}")
    print(f"In:  {varz.in_msgs} msgs, {varz.in_bytes} bytes")
    print(f"Out: {varz.out_msgs} msgs, {varz.out_bytes} bytes")

    print(f"\n--- Connections ({page.num_connections} total) ---")
    for conn in page.connections or ():
        print(
            f"  cid={conn.cid} {conn.ip}:{conn.port} {conn.name or '-'} "
            f"to={conn.out_msgs} from={conn.in_msgs} subs={conn.num_subs}"
        )
        for subject in conn.subjects[:3]:
            print(f"    - {subject}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8222"))
