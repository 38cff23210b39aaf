from __future__ import annotations

import asyncio

import structlog

from portwatch.errors import ConnectFailure
from portwatch.models import Endpoint


logger = structlog.get_logger(__name__)


async def connect(endpoint: Endpoint, timeout: float) -> None:
    """Open a TCP connection to ``endpoint`` and close it straight away.

    Raises ConnectFailure for every way the connection can fail to establish
    within ``timeout`` seconds.
    """
    writer = None
    try:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(endpoint.host, endpoint.port),
            timeout=max(0.0, float(timeout)),
        )
    except asyncio.TimeoutError as e:
        raise ConnectFailure(endpoint.address, f"timeout after {timeout}s") from e
    except OSError as e:
        raise ConnectFailure(endpoint.address, f"{type(e).__name__}: {e}") from e
    finally:
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass


async def probe(endpoint: Endpoint, timeout: float) -> bool:
    try:
        await connect(endpoint, timeout)
    except ConnectFailure as e:
        logger.debug("Endpoint closed", endpoint=endpoint.address, reason=e.reason)
        return False
    logger.debug("Endpoint open", endpoint=endpoint.address)
    return True
