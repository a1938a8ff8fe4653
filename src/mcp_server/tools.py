"""
The six workflow tools and their input structs.

Handlers read the session snapshot they are given and return a
``ToolOutcome``; any session change travels back as a pure mutation that the
dispatcher commits only after the handler succeeded. Backend errors are
never caught here except to attach a hint before re-raising.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, StringConstraints, field_validator

from src.clients import (
    BackendError,
    BackendErrorKind,
    FormatterClient,
    GraphQueryClient,
    TranslatorClient,
)
from src.shared.config import Config
from src.shared.observability import get_logger

from .errors import SessionError
from .geo import extract_locations, map_hint
from .prompts import SYSTEM_PROMPT
from .registry import ToolContext, ToolInput, ToolOutcome, ToolRegistry, ToolSpec

logger = get_logger(__name__)

DISCOVER_QUESTION_TEMPLATE = "show all measurement locations in {location}"
NO_SELECTION_HINT = (
    "No locations are selected for this thread; call select_locations "
    "before translate_nl_to_sparql."
)

LocationId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


@dataclass
class Deps:
    """Backend clients and config shared by every tool call."""

    config: Config
    translator: TranslatorClient
    graph_query: GraphQueryClient
    formatter: FormatterClient

    @classmethod
    def from_config(cls, config: Config) -> "Deps":
        return cls(
            config=config,
            translator=TranslatorClient.from_config(config.backends.translator),
            graph_query=GraphQueryClient.from_config(config.backends.graph_query),
            formatter=FormatterClient.from_config(config.backends.formatter),
        )

    async def close(self) -> None:
        for client in (self.translator, self.graph_query, self.formatter):
            await client.close()


def _non_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


# ===== Input structs =====


class GetSystemPromptInput(ToolInput):
    pass


class DiscoverLocationsInput(ToolInput):
    location: str = Field(description="Area to search, e.g. 'Oostende'")

    @field_validator("location")
    @classmethod
    def _location_not_blank(cls, v: str) -> str:
        return _non_blank(v).strip()


class SelectLocationsInput(ToolInput):
    location_ids: List[LocationId] = Field(
        alias="locationIds",
        description="Location identifiers (URIs) returned by discover_locations",
    )


class TranslateInput(ToolInput):
    question: str = Field(description="The user's question in natural language")

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, v: str) -> str:
        return _non_blank(v)


class ExecuteQueryInput(ToolInput):
    query: str = Field(description="SPARQL query text")

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, v: str) -> str:
        return _non_blank(v)


class FormatResultsInput(ToolInput):
    results: Union[Dict[str, Any], List[Any]] = Field(
        description="Result object as returned by execute_sparql_query"
    )
    query_type: Literal["auto", "table", "map"] = Field(
        default="auto", alias="queryType"
    )
    query: Optional[str] = Field(
        default=None, description="Query that produced the results"
    )


# ===== Handlers =====


async def get_system_prompt(ctx: ToolContext, args: GetSystemPromptInput) -> ToolOutcome:
    return ToolOutcome(result={"prompt": SYSTEM_PROMPT})


async def discover_locations(
    ctx: ToolContext, args: DiscoverLocationsInput
) -> ToolOutcome:
    deps: Deps = ctx.deps
    question = DISCOVER_QUESTION_TEMPLATE.format(location=args.location)

    # Translate then query; both calls are read-only so a failure in the
    # second leaves nothing to undo.
    query = await deps.translator.translate(question, ctx.thread_id)
    result = await deps.graph_query.execute(query)

    locations, skipped = extract_locations(result.rows)
    if skipped:
        logger.info(
            "discover_rows_skipped",
            thread_id=ctx.thread_id,
            skipped=skipped,
            rows=result.total_count,
        )

    return ToolOutcome(
        result={
            "locations": [location.to_dict() for location in locations],
            "total-count": len(locations),
            "skipped": skipped,
            "map": map_hint(locations, deps.config.map),
            "query": query,
        }
    )


async def select_locations(
    ctx: ToolContext, args: SelectLocationsInput
) -> ToolOutcome:
    selection = tuple(dict.fromkeys(args.location_ids))

    def _select(session):
        return replace(session, selected_location_ids=selection)

    return ToolOutcome(
        result={"count": len(selection), "locationIds": list(selection)},
        mutation=_select,
    )


async def translate_nl_to_sparql(
    ctx: ToolContext, args: TranslateInput
) -> ToolOutcome:
    deps: Deps = ctx.deps
    selection = ctx.session.selected_location_ids

    if not selection and deps.config.workflow.require_selection_before_translate:
        raise SessionError("NoSelection", NO_SELECTION_HINT, hint=NO_SELECTION_HINT)

    try:
        query = await deps.translator.translate(
            args.question, ctx.thread_id, selection
        )
    except BackendError as exc:
        if exc.kind is BackendErrorKind.REJECTED and not selection:
            exc.hint = NO_SELECTION_HINT
        raise

    def _remember(session):
        return replace(session, last_translated_query=query)

    return ToolOutcome(
        result={"query": query, "selectedLocationIds": list(selection)},
        mutation=_remember,
    )


async def execute_sparql_query(
    ctx: ToolContext, args: ExecuteQueryInput
) -> ToolOutcome:
    deps: Deps = ctx.deps
    result = await deps.graph_query.execute(args.query)
    return ToolOutcome(result=result.to_dict())


async def format_sparql_results(
    ctx: ToolContext, args: FormatResultsInput
) -> ToolOutcome:
    deps: Deps = ctx.deps
    formatted = await deps.formatter.format(
        args.results, args.query_type, query=args.query
    )
    return ToolOutcome(result={"formatted": formatted})


def tool_specs() -> List[ToolSpec]:
    return [
        ToolSpec(
            name="get_system_prompt",
            description="Return the instructions describing how to use these tools.",
            input_model=GetSystemPromptInput,
            handler=get_system_prompt,
        ),
        ToolSpec(
            name="discover_locations",
            description=(
                "Find measurement locations in a named area. Returns the "
                "locations plus a map centre and zoom. Does not change the selection."
            ),
            input_model=DiscoverLocationsInput,
            handler=discover_locations,
        ),
        ToolSpec(
            name="select_locations",
            description=(
                "Replace the selected locations for this thread with the given "
                "identifiers. Returns the new selection count."
            ),
            input_model=SelectLocationsInput,
            handler=select_locations,
            read_only=False,
            mutates_session=True,
        ),
        ToolSpec(
            name="translate_nl_to_sparql",
            description=(
                "Translate a natural-language question into SPARQL using the "
                "selected locations as context. Remembers the query for this thread."
            ),
            input_model=TranslateInput,
            handler=translate_nl_to_sparql,
            read_only=False,
            mutates_session=True,
            idempotent=False,
        ),
        ToolSpec(
            name="execute_sparql_query",
            description="Execute a SPARQL query and return its rows and row count.",
            input_model=ExecuteQueryInput,
            handler=execute_sparql_query,
        ),
        ToolSpec(
            name="format_sparql_results",
            description=(
                "Format query results for display. queryType is one of auto, "
                "table or map."
            ),
            input_model=FormatResultsInput,
            handler=format_sparql_results,
        ),
    ]


def build_registry() -> ToolRegistry:
    return ToolRegistry(tool_specs())
