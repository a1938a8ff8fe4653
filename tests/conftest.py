# Shared fixtures: backend services are stubbed with httpx.MockTransport so
# the real clients, error mapping and dispatcher run unmodified.

import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import httpx
import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["ENV"] = "development"
for var in ("CONFIG_PATH", "TRANSLATOR_URL", "GRAPH_QUERY_URL", "FORMATTER_URL"):
    os.environ.pop(var, None)


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def sparql_response(variables: List[str], rows: List[dict]) -> httpx.Response:
    """SPARQL JSON results document with plain literal bindings."""
    bindings = []
    for row in rows:
        binding = {}
        for name, value in row.items():
            if isinstance(value, float):
                binding[name] = {
                    "type": "literal",
                    "value": str(value),
                    "datatype": "http://www.w3.org/2001/XMLSchema#decimal",
                }
            else:
                binding[name] = {"type": "literal", "value": str(value)}
        bindings.append(binding)
    return json_response({"head": {"vars": variables}, "results": {"bindings": bindings}})


class StubService:
    """Callable MockTransport handler that records every request it receives."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.requests: List[httpx.Request] = []
        self.respond: Optional[Callable[[httpx.Request], httpx.Response]] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.respond is None:
            return json_response({"error": f"{self.name} stub has no response"}, 500)
        return self.respond(request)

    @property
    def calls(self) -> int:
        return len(self.requests)

    @property
    def json_bodies(self) -> List[Any]:
        return [json.loads(request.content) for request in self.requests]


class Stubs:
    def __init__(self) -> None:
        self.translator = StubService("Translator")
        self.graph_query = StubService("GraphQuery")
        self.formatter = StubService("Formatter")

    @property
    def total_calls(self) -> int:
        return self.translator.calls + self.graph_query.calls + self.formatter.calls


def mock_client(stub: StubService, base_url: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(stub), base_url=base_url)


@pytest.fixture
def config():
    """Fresh Config per test so tests may flip flags freely."""
    from src.shared.config import load_config

    cfg, _ = load_config()
    return cfg


@pytest.fixture
def stubs() -> Stubs:
    return Stubs()


@pytest.fixture
def deps(config, stubs):
    from src.clients import FormatterClient, GraphQueryClient, TranslatorClient
    from src.mcp_server.tools import Deps

    backends = config.backends
    return Deps(
        config=config,
        translator=TranslatorClient.from_config(
            backends.translator,
            client=mock_client(stubs.translator, backends.translator.base_url),
        ),
        graph_query=GraphQueryClient.from_config(
            backends.graph_query,
            client=mock_client(stubs.graph_query, backends.graph_query.base_url),
        ),
        formatter=FormatterClient.from_config(
            backends.formatter,
            client=mock_client(stubs.formatter, backends.formatter.base_url),
        ),
    )


@pytest.fixture
def store(config):
    from src.mcp_server.session_store import SessionStore

    return SessionStore(idle_ttl_seconds=config.sessions.idle_ttl_seconds)


@pytest.fixture
def dispatcher(deps, store):
    from src.mcp_server.dispatcher import Dispatcher
    from src.mcp_server.tools import build_registry

    return Dispatcher(build_registry(), store, deps)
