"""Helpers shared by plugin kinds for the local stage: names, credentials, readiness probes."""

import asyncio
import logging
import os

import httpx

logger = logging.getLogger(__name__)

# Credentials of local containers. Never used on cloud stages.
LOCAL_PASSWORD = "password"
LOCAL_ACCESS_KEY_ID = "local-access-key-id"
LOCAL_SECRET_ACCESS_KEY = "local-secret-access-key"


def container_name(plugin, *parts) -> str:
    """``<app>-<kind>[-<instance>][-<parts...>]``."""
    return "-".join([plugin.local_name, *parts])


def is_dry_run(stage) -> bool:
    return bool(getattr(stage, "dry_run", False))


def write_build_file(build_dir, path, content, dry_run=False, mode=None):
    """Write *content* to *path* inside the plugin's build directory."""
    full_path = os.path.join(build_dir, path)
    if dry_run:
        logger.info(f"[dry-run] write {full_path}")
        return
    os.makedirs(os.path.dirname(full_path) or ".", exist_ok=True)
    with open(full_path, "w") as f:
        f.write(content)
    if mode is not None:
        os.chmod(full_path, mode)


async def wait_for_http(url, timeout=120, interval=2, dry_run=False):
    """Poll *url* until it answers with a 2xx status.

    Returns:
        True once the endpoint is healthy, False on timeout.
    """
    if dry_run:
        logger.info(f"[dry-run] Poll every {interval}s (up to {timeout}s): GET {url}")
        return True

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    async with httpx.AsyncClient() as client:
        while loop.time() < deadline:
            try:
                resp = await client.get(url, timeout=min(5, max(deadline - loop.time(), 0.1)))
                if resp.is_success:
                    return True
                logger.debug(f"{url}: HTTP {resp.status_code}")
            except httpx.TransportError as e:
                logger.debug(f"{url}: {e!r}")
            await asyncio.sleep(interval)

    logger.error(f"Timeout after {timeout}s waiting for {url}")
    return False


async def wait_for_tcp(host, port, timeout=120, interval=2, dry_run=False):
    """Poll until a TCP connection to *host*:*port* succeeds.

    Returns:
        True once the port accepts connections, False on timeout.
    """
    if dry_run:
        logger.info(f"[dry-run] Poll every {interval}s (up to {timeout}s): tcp://{host}:{port}")
        return True

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=min(5, max(deadline - loop.time(), 0.1))
            )
        except (OSError, TimeoutError) as e:
            logger.debug(f"tcp://{host}:{port}: {e!r}")
        else:
            writer.close()
            await writer.wait_closed()
            return True
        await asyncio.sleep(interval)

    logger.error(f"Timeout after {timeout}s waiting for tcp://{host}:{port}")
    return False
