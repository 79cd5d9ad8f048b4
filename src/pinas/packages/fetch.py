from urllib.error import HTTPError
from urllib.request import Request, urlopen


def fetch_bytes(url: str, timeout: int, accept: str = "*/*") -> bytes:
    """Blocking HTTP GET returning the body; run it off the event loop.

    Non-2xx responses raise ``urllib.error.HTTPError``, transport failures
    ``urllib.error.URLError``.
    """
    request = Request(url, headers={"Accept": accept, "User-Agent": "pinas"})
    with urlopen(request, timeout=timeout) as response:
        status = getattr(response, "status", 200)
        if not 200 <= status < 300:
            raise HTTPError(url, status, f"HTTP {status}", response.headers, None)
        return response.read()
