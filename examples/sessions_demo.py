"""
SessionKeeper - Counter Example

Demonstrates the request lifecycle:
- load_or_new at the start of each request
- mutate the payload
- save before the response goes out

A tiny in-process "browser" keeps the cookie between requests, so the
counter goes 0, 1, 2, ... for as long as the session lives.

Run with the memory store (default):

    python examples/sessions_demo.py

Or against Redis, configured through the environment:

    SK_SESSIONS__PERSISTENCE__BACKEND=redis \\
    SK_SESSIONS__PERSISTENCE__REDIS_URL=redis://localhost:6379/0 \\
    python examples/sessions_demo.py
"""

import asyncio
import logging

from sessionkeeper import ConfigLoader, SessionEngine


# ============================================================================
# 1. Minimal request / response objects
# ============================================================================

class DemoRequest:
    def __init__(self, cookie: str | None = None, path: str = "/view/"):
        self.headers = {"cookie": cookie} if cookie else {}
        self.method = "GET"
        self.path = path


class DemoResponse:
    def __init__(self):
        self.headers: dict[str, str] = {}
        self.cookies: dict[str, str] = {}
        self.body = ""

    def set_cookie(self, key: str, value: str = "", **kwargs) -> None:
        self.cookies[key] = value

    def delete_cookie(self, key: str, **kwargs) -> None:
        self.cookies[key] = ""


class Browser:
    """Keeps the session cookie between requests."""

    def __init__(self, cookie_name: str):
        self.cookie_name = cookie_name
        self.jar: dict[str, str] = {}

    def request(self) -> DemoRequest:
        value = self.jar.get(self.cookie_name)
        return DemoRequest(f"{self.cookie_name}={value}" if value else None)

    def receive(self, response: DemoResponse) -> None:
        for key, value in response.cookies.items():
            if value:
                self.jar[key] = value
            else:
                self.jar.pop(key, None)


# ============================================================================
# 2. Handler
# ============================================================================

async def view(engine: SessionEngine, request: DemoRequest, response: DemoResponse) -> int:
    """Increment the counter of a known session; start new ones at 0."""
    session = await engine.load_or_new(request, response, default=lambda: {"counter": 0})
    if session.found:
        session.data["counter"] += 1

    await engine.save(request, response, session.id, session.data)
    response.body = f"Hello, counter={session.data['counter']}\n"
    return session.data["counter"]


# ============================================================================
# 3. Wiring
# ============================================================================

def create_engine(environ=None) -> SessionEngine:
    loader = ConfigLoader.load(
        overrides={
            "sessions": {
                "name": "counter_demo",
                "transport": {"name": "SessionID", "secure": False},
                "persistence": {"ttl": 60},
            }
        },
        environ=environ,
    )
    return SessionEngine.from_policy(loader.session_policy())


async def run_counter(engine: SessionEngine, requests: int = 3) -> list[int]:
    """Send ``requests`` requests from one browser; return the counters seen."""
    browser = Browser(engine.policy.transport.name)
    counters = []
    for _ in range(requests):
        request, response = browser.request(), DemoResponse()
        counters.append(await view(engine, request, response))
        browser.receive(response)
        print(response.body, end="")
    return counters


async def demo():
    print("=" * 70)
    print("SESSIONKEEPER - COUNTER DEMO")
    print("=" * 70)

    engine = create_engine()
    print(f"Store: {engine.store!r}")
    print()

    try:
        counters = await run_counter(engine, requests=3)
        print()
        print(f"Counters seen: {counters}")

        # A second browser gets its own session
        print("New browser:")
        await run_counter(engine, requests=1)
    finally:
        await engine.shutdown()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(demo())
