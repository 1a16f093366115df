"""
Runnable examples stay in sync with the library.
"""

import importlib.util
from pathlib import Path

import pytest


EXAMPLES_DIR = Path(__file__).resolve().parent.parent / "examples"


def load_example(name: str):
    module_spec = importlib.util.spec_from_file_location(name, EXAMPLES_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


class TestSessionsDemo:

    @pytest.fixture
    def demo(self):
        return load_example("sessions_demo")

    @pytest.mark.asyncio
    async def test_counter_increments_across_requests(self, demo):
        engine = demo.create_engine(environ={})
        try:
            assert await demo.run_counter(engine, requests=3) == [0, 1, 2]
            # A fresh browser starts over
            assert await demo.run_counter(engine, requests=2) == [0, 1]
        finally:
            await engine.shutdown()

    @pytest.mark.asyncio
    async def test_forged_cookie_starts_new_session(self, demo):
        engine = demo.create_engine(environ={})
        request = demo.DemoRequest("SessionID=forged-id")
        response = demo.DemoResponse()

        assert await demo.view(engine, request, response) == 0
        assert response.cookies["SessionID"] != "forged-id"
        assert response.body == "Hello, counter=0\n"

    def test_redis_backend_from_environment(self, demo):
        engine = demo.create_engine(
            environ={"SK_SESSIONS__PERSISTENCE__BACKEND": "redis"}
        )
        assert engine.store.store_name == "redis"
        assert engine.store.ttl == 60
