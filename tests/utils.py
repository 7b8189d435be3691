import json
from typing import Any, Callable, Dict, List

import httpx


def offline_transport() -> httpx.MockTransport:
    """Transport for a provider that cannot be reached."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


def osrm_handler(distance_m: float = 1000.0, duration_s: float = 60.0) -> Callable[[httpx.Request], httpx.Response]:
    """Fake OSRM answering every route and table request."""

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        coordinates = path.rsplit("/", 1)[-1].split(";")
        if "/table/" in path:
            n = len(coordinates)
            return httpx.Response(
                200,
                json={
                    "code": "Ok",
                    "distances": [[0 if i == j else distance_m for j in range(n)] for i in range(n)],
                    "durations": [[0 if i == j else duration_s for j in range(n)] for i in range(n)],
                },
            )
        return httpx.Response(
            200,
            json={"code": "Ok", "routes": [{"distance": distance_m, "duration": duration_s, "geometry": ""}]},
        )

    return handler


def vroom_handler(solution: Dict[str, Any], requests: List[Dict[str, Any]] = None) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(json.loads(request.content))
        return httpx.Response(200, json=solution)

    return handler
