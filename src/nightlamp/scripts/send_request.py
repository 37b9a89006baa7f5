"""Send a raw GET request to any lamp endpoint.

Use this via the main CLI:
`nightlamp dev get /alarmcfg/get` or `nightlamp dev get /sethp --param val=128`.
"""

import logging

from nightlamp.lib.lamp import NightLamp

log = logging.getLogger("nightlamp")


def parse_params(pairs: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}.")
        params[key] = value
    return params


async def send_request(lamp: NightLamp, path: str, params: dict[str, str]) -> str:
    """Issue the request and return the response body as text."""
    if not path.startswith("/"):
        path = "/" + path
    response = await lamp.request(path, params or None)
    log.debug(
        "dev get complete path=%s status=%d bytes=%d",
        path,
        response.status_code,
        len(response.content),
    )
    return response.text
