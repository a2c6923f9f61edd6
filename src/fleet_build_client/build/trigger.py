"""Remote build trigger with live build log rendering."""

import asyncio
import logging
from typing import AsyncIterable, Optional

import aiohttp

from ..exceptions import BuildError, BuildTriggerError
from .interpreter import BuildLogInterpreter, BuildLogSink, TerminalSink
from .stream import ArrayStreamParser

logger = logging.getLogger(__name__)

BUILD_ENDPOINT = "v3/build"


def build_params(owner: str, app: str) -> dict[str, str]:
    """Query parameters of a build request."""
    return {
        "owner": owner,
        "app": app,
        "dockerfilePath": "",
        "emulated": "false",
        "nocache": "false",
        "headless": "false",
    }


async def interpret_stream(chunks: AsyncIterable[bytes], sink: BuildLogSink) -> bool:
    """Render a chunked build log and return the build verdict.

    Args:
        chunks: Response body chunks in arrival order
        sink: Destination for rendered lines

    Returns:
        The last ``isSuccess`` value seen, False if none was sent

    Raises:
        BuildStreamError: If the stream cannot be decoded
    """
    parser = ArrayStreamParser()
    interpreter = BuildLogInterpreter(sink)

    async for chunk in chunks:
        parser.extend(chunk)
        for message in parser.values():
            interpreter.feed(message)

    parser.feed_eof()
    for message in parser.values():
        interpreter.feed(message)

    return interpreter.success


async def trigger_build(
    token: str,
    owner: str,
    app: str,
    archive: bytes,
    builder_url: str = "https://builder.balena-cloud.com",
    sink: Optional[BuildLogSink] = None,
    timeout: int = 30,
) -> bool:
    """Upload a source archive to the builder and follow the build log.

    Args:
        token: API token
        owner: Username owning the application
        app: Application name
        archive: Gzip-compressed tar of the build context
        builder_url: Builder base URL
        sink: Destination for the build log; stdout when None
        timeout: Connect timeout in seconds; the log stream itself is unbounded

    Returns:
        True if the builder reported success

    Raises:
        BuildTriggerError: If the builder rejects the request
        BuildStreamError: If the build log cannot be decoded
        BuildError: If the builder cannot be reached
    """
    url = f"{builder_url.rstrip('/')}/{BUILD_ENDPOINT}"
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Encoding": "gzip",
    }
    sink = sink if sink is not None else TerminalSink()

    logger.info("Starting build of %s/%s (%d bytes of source)", owner, app, len(archive))
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=timeout)
        ) as session:
            async with session.post(
                url, params=build_params(owner, app), data=archive, headers=headers
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise BuildTriggerError(resp.status, body[:200])
                success = await interpret_stream(resp.content.iter_any(), sink)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise BuildError(f"Build request to {url} failed: {e}") from e

    logger.info("Build of %s/%s %s", owner, app, "succeeded" if success else "failed")
    return success
