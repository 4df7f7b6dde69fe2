"""
LangGraph dispatch: classify → (defect agent) or (query agent → query service → chart | rows).

Nodes only transform state; any AppError they raise propagates out of
``ainvoke`` to the orchestrator, which owns error conversion.
"""

import logging
from typing import Literal, TypedDict

from langgraph.graph import END, StateGraph

from chatgate.agent.gateway import AgentKind, StreamingInvocationGateway, empty_response_text
from chatgate.agent.prompts import defect_prompt, extract_query, query_prompt
from chatgate.core.config import API_PREFIX
from chatgate.services.chart_service import ChartRenderer
from chatgate.services.intent_router import Intent, chart_kind, classify
from chatgate.services.query_service import QueryExecutor
from chatgate.services.result_export import NO_RESULTS_TEXT, ResultExporter

logger = logging.getLogger(__name__)

CHART_READY_TEXT = "I've generated a chart for your query. Here's your visualization:"


class Reply(TypedDict, total=False):
    response: str
    type: str
    chart_url: str | None
    download_url: str | None


class DispatchState(TypedDict, total=False):
    session_id: str
    message: str
    intent: Intent
    query: str
    rows: list
    reply: Reply


def build_dispatch_graph(
    gateway: StreamingInvocationGateway,
    executor: QueryExecutor,
    charts: ChartRenderer,
    exporter: ResultExporter,
):
    """Build and compile the dispatch graph over the given collaborators."""

    async def _classify(state: DispatchState) -> dict:
        intent = classify(state["message"])
        logger.info("[graph:classify] session_id=%s intent=%s", state["session_id"][:16], intent.value)
        return {"intent": intent}

    async def _recommend_defect(state: DispatchState) -> dict:
        answer = await gateway.invoke(
            defect_prompt(state["message"]), state["session_id"], AgentKind.DEFECT
        )
        return {"reply": {"response": answer, "type": "defect_recommendation"}}

    async def _generate_query(state: DispatchState) -> dict:
        answer = await gateway.invoke(
            query_prompt(state["message"]), state["session_id"], AgentKind.QUERY
        )
        if answer == empty_response_text(AgentKind.QUERY):
            return {"reply": {"response": answer, "type": "text"}}
        query = extract_query(answer)
        logger.info("[graph:generate_query] OUT query=%r", query)
        return {"query": query}

    async def _run_query(state: DispatchState) -> dict:
        rows = await executor.execute(state["query"])
        logger.info("[graph:run_query] OUT rows=%d", len(rows))
        if not rows:
            return {"rows": rows, "reply": {"response": NO_RESULTS_TEXT, "type": "text"}}
        return {"rows": rows}

    async def _render_chart(state: DispatchState) -> dict:
        path = await charts.render(state["rows"], chart_kind(state["message"]))
        return {
            "reply": {
                "response": CHART_READY_TEXT,
                "type": "chart",
                "chart_url": f"{API_PREFIX}/chart/{path.name}",
            }
        }

    async def _present_rows(state: DispatchState) -> dict:
        presentation = exporter.present(state["rows"], state["message"])
        return {
            "reply": {
                "response": presentation.text,
                "type": presentation.kind,
                "download_url": presentation.download_url,
            }
        }

    def _route_intent(state: DispatchState) -> Literal["recommend_defect", "generate_query"]:
        return "recommend_defect" if state["intent"] is Intent.DEFECT else "generate_query"

    def _route_after_generate(state: DispatchState) -> Literal["run_query", "done"]:
        return "done" if state.get("reply") else "run_query"

    def _route_after_rows(state: DispatchState) -> Literal["render_chart", "present_rows", "done"]:
        if state.get("reply"):
            return "done"
        return "render_chart" if state["intent"] is Intent.CHART else "present_rows"

    graph = StateGraph(DispatchState)

    graph.add_node("classify", _classify)
    graph.add_node("recommend_defect", _recommend_defect)
    graph.add_node("generate_query", _generate_query)
    graph.add_node("run_query", _run_query)
    graph.add_node("render_chart", _render_chart)
    graph.add_node("present_rows", _present_rows)

    graph.set_entry_point("classify")
    graph.add_conditional_edges(
        "classify",
        _route_intent,
        {"recommend_defect": "recommend_defect", "generate_query": "generate_query"},
    )
    graph.add_conditional_edges(
        "generate_query", _route_after_generate, {"run_query": "run_query", "done": END}
    )
    graph.add_conditional_edges(
        "run_query",
        _route_after_rows,
        {"render_chart": "render_chart", "present_rows": "present_rows", "done": END},
    )
    graph.add_edge("recommend_defect", END)
    graph.add_edge("render_chart", END)
    graph.add_edge("present_rows", END)

    return graph.compile()
