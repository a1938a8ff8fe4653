"""
Workflow tool behaviour through the dispatcher with stubbed backends.
"""

import pytest

from conftest import json_response, sparql_response
from src.mcp_server.prompts import SYSTEM_PROMPT
from src.mcp_server.tools import DISCOVER_QUESTION_TEMPLATE, NO_SELECTION_HINT

OOSTENDE_ROWS = [
    {"id": "loc1", "lat": 51.21, "lng": 4.40},
    {"id": "loc2", "lat": 51.22, "lng": 4.41},
]


class TestGetSystemPrompt:
    @pytest.mark.asyncio
    async def test_returns_static_prompt(self, dispatcher, stubs):
        response = await dispatcher.dispatch("get_system_prompt", {}, thread_id="t1")

        assert response.result == {"prompt": SYSTEM_PROMPT}
        assert stubs.total_calls == 0


class TestDiscoverLocations:
    @pytest.mark.asyncio
    async def test_oostende_scenario(self, dispatcher, stubs, store):
        stubs.translator.respond = lambda request: json_response({"query": "Q1"})
        stubs.graph_query.respond = lambda request: sparql_response(
            ["id", "lat", "lng"], OOSTENDE_ROWS
        )

        response = await dispatcher.dispatch(
            "discover_locations", {"location": "Oostende"}, thread_id="t1"
        )

        result = response.result
        assert response.error is None
        assert [loc["id"] for loc in result["locations"]] == ["loc1", "loc2"]
        assert result["total-count"] == 2
        assert result["skipped"] == 0
        assert result["query"] == "Q1"
        assert result["map"]["center"]["lat"] == pytest.approx(51.215)
        assert result["map"]["center"]["lng"] == pytest.approx(4.405)

        assert stubs.translator.json_bodies == [
            {
                "question": DISCOVER_QUESTION_TEMPLATE.format(location="Oostende"),
                "threadId": "t1",
            }
        ]
        assert stubs.graph_query.requests[0].content == b"Q1"
        assert store.snapshot("t1").selected_location_ids == ()

    @pytest.mark.asyncio
    async def test_no_locations_found(self, dispatcher, stubs, config):
        stubs.translator.respond = lambda request: json_response({"query": "Q1"})
        stubs.graph_query.respond = lambda request: sparql_response(["id"], [])

        response = await dispatcher.dispatch(
            "discover_locations", {"location": "Atlantis"}, thread_id="t1"
        )

        assert response.result["locations"] == []
        assert response.result["total-count"] == 0
        assert response.result["map"]["zoom"] == config.map.default_zoom

    @pytest.mark.asyncio
    async def test_graph_query_failure_after_translation(self, dispatcher, stubs):
        stubs.translator.respond = lambda request: json_response({"query": "Q1"})
        stubs.graph_query.respond = lambda request: json_response({}, 502)

        response = await dispatcher.dispatch(
            "discover_locations", {"location": "Oostende"}, thread_id="t1"
        )

        assert response.result is None
        assert response.error["kind"] == "BackendError"
        assert response.error["service"] == "GraphQuery"
        assert response.error["reason"] == "BadResponse"


class TestSelectLocations:
    @pytest.mark.asyncio
    async def test_selection_replaces_previous(self, dispatcher, store):
        await dispatcher.dispatch("select_locations", {"locationIds": ["X"]}, thread_id="t1")
        response = await dispatcher.dispatch(
            "select_locations", {"locationIds": ["A", "B"]}, thread_id="t1"
        )

        assert response.result == {"count": 2, "locationIds": ["A", "B"]}
        assert store.snapshot("t1").selected_location_ids == ("A", "B")

    @pytest.mark.asyncio
    async def test_selection_is_idempotent(self, dispatcher, store):
        for _ in range(2):
            response = await dispatcher.dispatch(
                "select_locations", {"locationIds": ["A", "B"]}, thread_id="t1"
            )

        assert response.result["count"] == 2
        assert store.snapshot("t1").selected_location_ids == ("A", "B")

    @pytest.mark.asyncio
    async def test_duplicates_collapse_in_order(self, dispatcher):
        response = await dispatcher.dispatch(
            "select_locations", {"locationIds": ["B", "A", "B"]}, thread_id="t1"
        )

        assert response.result == {"count": 2, "locationIds": ["B", "A"]}

    @pytest.mark.asyncio
    async def test_empty_selection_clears(self, dispatcher, store):
        await dispatcher.dispatch("select_locations", {"locationIds": ["A"]}, thread_id="t1")
        response = await dispatcher.dispatch(
            "select_locations", {"locationIds": []}, thread_id="t1"
        )

        assert response.result == {"count": 0, "locationIds": []}
        assert store.snapshot("t1").selected_location_ids == ()


class TestTranslate:
    @pytest.mark.asyncio
    async def test_selection_forwarded_and_query_remembered(self, dispatcher, stubs, store):
        stubs.translator.respond = lambda request: json_response({"query": "SELECT ?t {}"})

        await dispatcher.dispatch(
            "select_locations", {"locationIds": ["A", "B"]}, thread_id="t1"
        )
        response = await dispatcher.dispatch(
            "translate_nl_to_sparql",
            {"question": "What is the temperature?"},
            thread_id="t1",
        )

        assert response.result == {
            "query": "SELECT ?t {}",
            "selectedLocationIds": ["A", "B"],
        }
        assert stubs.translator.json_bodies[0] == {
            "question": "What is the temperature?",
            "threadId": "t1",
            "selectedLocationIds": ["A", "B"],
        }
        assert store.snapshot("t1").last_translated_query == "SELECT ?t {}"

    @pytest.mark.asyncio
    async def test_empty_selection_is_advisory(self, dispatcher, stubs):
        stubs.translator.respond = lambda request: json_response({"query": "Q"})

        response = await dispatcher.dispatch(
            "translate_nl_to_sparql", {"question": "q"}, thread_id="t1"
        )

        assert response.result["query"] == "Q"
        assert stubs.translator.json_bodies[0]["selectedLocationIds"] == []

    @pytest.mark.asyncio
    async def test_rejection_without_selection_carries_hint(self, dispatcher, stubs, store):
        stubs.translator.respond = lambda request: json_response(
            {"error": "no locations selected"}, 400
        )

        response = await dispatcher.dispatch(
            "translate_nl_to_sparql", {"question": "q"}, thread_id="t1"
        )

        assert response.error["kind"] == "BackendError"
        assert response.error["service"] == "Translator"
        assert response.error["reason"] == "Rejected"
        assert response.error["hint"] == NO_SELECTION_HINT
        assert store.snapshot("t1").last_translated_query is None

    @pytest.mark.asyncio
    async def test_rejection_with_selection_has_no_hint(self, dispatcher, stubs):
        stubs.translator.respond = lambda request: json_response({"error": "bad"}, 400)

        await dispatcher.dispatch("select_locations", {"locationIds": ["A"]}, thread_id="t1")
        response = await dispatcher.dispatch(
            "translate_nl_to_sparql", {"question": "q"}, thread_id="t1"
        )

        assert response.error["reason"] == "Rejected"
        assert "hint" not in response.error

    @pytest.mark.asyncio
    async def test_strict_ordering_requires_selection(self, dispatcher, stubs, config):
        config.workflow.require_selection_before_translate = True

        response = await dispatcher.dispatch(
            "translate_nl_to_sparql", {"question": "q"}, thread_id="t1"
        )

        assert response.error["kind"] == "SessionError"
        assert response.error["reason"] == "NoSelection"
        assert response.error["hint"] == NO_SELECTION_HINT
        assert stubs.translator.calls == 0

    @pytest.mark.asyncio
    async def test_failed_translation_keeps_previous_query(self, dispatcher, stubs, store):
        stubs.translator.respond = lambda request: json_response({"query": "Q1"})
        await dispatcher.dispatch("translate_nl_to_sparql", {"question": "q"}, thread_id="t1")

        before = store.snapshot("t1").to_dict()

        stubs.translator.respond = lambda request: json_response({}, 503)
        response = await dispatcher.dispatch(
            "translate_nl_to_sparql", {"question": "q2"}, thread_id="t1"
        )

        assert response.is_error
        assert response.error["reason"] == "BadResponse"
        assert store.snapshot("t1").to_dict() == before
        assert store.snapshot("t1").last_translated_query == "Q1"


class TestExecuteQuery:
    @pytest.mark.asyncio
    async def test_rows_and_count(self, dispatcher, stubs):
        stubs.graph_query.respond = lambda request: sparql_response(
            ["id", "lat", "lng"], OOSTENDE_ROWS
        )

        response = await dispatcher.dispatch(
            "execute_sparql_query", {"query": "SELECT * {}"}, thread_id="t1"
        )

        assert response.result["variables"] == ["id", "lat", "lng"]
        assert response.result["rows"][0] == {"id": "loc1", "lat": 51.21, "lng": 4.4}
        assert response.result["total-count"] == 2

    @pytest.mark.asyncio
    async def test_session_state_unchanged(self, dispatcher, stubs, store):
        stubs.translator.respond = lambda request: json_response({"query": "Q1"})
        stubs.graph_query.respond = lambda request: sparql_response(["x"], [{"x": "1"}])
        await dispatcher.dispatch("select_locations", {"locationIds": ["A"]}, thread_id="t1")
        await dispatcher.dispatch("translate_nl_to_sparql", {"question": "q"}, thread_id="t1")
        before = store.snapshot("t1").to_dict()

        await dispatcher.dispatch("execute_sparql_query", {"query": "OTHER"}, thread_id="t1")

        after = store.snapshot("t1").to_dict()
        assert after == before
        assert after["lastTranslatedQuery"] == "Q1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"head": ["x"], "results": {"bindings": []}},
            {
                "head": {"vars": ["flag"]},
                "results": {
                    "bindings": [
                        {
                            "flag": {
                                "type": "literal",
                                "value": True,
                                "datatype": "http://www.w3.org/2001/XMLSchema#boolean",
                            }
                        }
                    ]
                },
            },
        ],
    )
    async def test_malformed_results_are_attributed(self, dispatcher, stubs, body):
        stubs.graph_query.respond = lambda request: json_response(body)

        response = await dispatcher.dispatch(
            "execute_sparql_query", {"query": "SELECT * {}"}, thread_id="t1"
        )

        assert response.result is None
        assert response.error["kind"] == "BackendError"
        assert response.error["service"] == "GraphQuery"
        assert response.error["reason"] == "BadResponse"

    @pytest.mark.asyncio
    async def test_backend_failure_surfaces_service(self, dispatcher, stubs):
        stubs.graph_query.respond = lambda request: json_response({"error": "oops"}, 500)

        response = await dispatcher.dispatch(
            "execute_sparql_query", {"query": "SELECT * {}"}, thread_id="t1"
        )

        assert response.result is None
        assert response.error["kind"] == "BackendError"
        assert response.error["service"] == "GraphQuery"


class TestFormatResults:
    @pytest.mark.asyncio
    async def test_auto_forwarded_and_echoed(self, dispatcher, stubs):
        formatted = {"type": "map", "features": [{"id": "loc1"}], "meta": None}
        stubs.formatter.respond = lambda request: json_response({"formatted": formatted})
        results = {"variables": ["id"], "rows": [{"id": "loc1"}], "total-count": 1}

        response = await dispatcher.dispatch(
            "format_sparql_results", {"results": results}, thread_id="t1"
        )

        assert response.result == {"formatted": formatted}
        assert stubs.formatter.json_bodies[0] == {"results": results, "queryType": "auto"}

    @pytest.mark.asyncio
    async def test_explicit_auto_forwarded_literally(self, dispatcher, stubs):
        formatted = {"type": "table", "columns": ["id"], "rows": [["loc1"]]}
        stubs.formatter.respond = lambda request: json_response({"formatted": formatted})
        results = {"variables": ["id"], "rows": [{"id": "loc1"}], "total-count": 1}

        response = await dispatcher.dispatch(
            "format_sparql_results",
            {"results": results, "queryType": "auto"},
            thread_id="t1",
        )

        assert response.result == {"formatted": formatted}
        assert stubs.formatter.json_bodies[0]["queryType"] == "auto"
        assert stubs.formatter.calls == 1

    @pytest.mark.asyncio
    async def test_explicit_query_type_and_query(self, dispatcher, stubs):
        stubs.formatter.respond = lambda request: json_response({"formatted": {}})

        await dispatcher.dispatch(
            "format_sparql_results",
            {"results": {"rows": []}, "queryType": "table", "query": "SELECT * {}"},
            thread_id="t1",
        )

        body = stubs.formatter.json_bodies[0]
        assert body["queryType"] == "table"
        assert body["query"] == "SELECT * {}"
