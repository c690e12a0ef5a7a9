from typing import Dict, Any

from datamind.tools.base import FunctionTool, params_schema, string_param

NO_RESULTS_MESSAGE = "No query results to visualize. Run a query first."

async def visualize_data(env, context, params: Dict[str, Any]) -> str:
    if not context.last_query_results:
        return NO_RESULTS_MESSAGE

    chart_type = (params.get("chart_type") or "").lower() or None
    draft = env.visualizer.create_visualization(
        context.last_query_results,
        context.last_query_sql,
        params.get("user_request", ""),
        chart_type=chart_type,
    )
    if draft is None:
        return "I could not build a chart from the last results."

    await env.contexts.update_context(context, pending_visualization=draft.model_dump())
    return f"Created a **{draft.chart_type}** chart: {draft.title}\n\n{draft.description}"

async def get_visualization_suggestions(env, context, params: Dict[str, Any]) -> str:
    if not context.last_query_results:
        return NO_RESULTS_MESSAGE

    profiles = env.visualizer.analyze_data(context.last_query_results)
    suggestions = env.visualizer.suggest_visualizations(profiles)
    column_lines = "\n".join(f"- {p.name}: {p.kind}" for p in profiles)
    if not suggestions:
        return f"Columns:\n{column_lines}\n\nThe results have no obvious chart; a table view fits best."
    suggestion_lines = "\n".join(f"- {s}" for s in suggestions)
    return f"Columns:\n{column_lines}\n\nSuggested charts:\n{suggestion_lines}"

TOOLS = [
    FunctionTool(
        name="visualize_data",
        description="Chart the results of the last query",
        category="visualization",
        handler=visualize_data,
        parameters=params_schema(
            chart_type={"type": "string", "enum": ["bar", "line", "pie", "scatter", "histogram"],
                        "description": "Chart type; chosen automatically when omitted"},
            user_request=string_param("What the chart should show"),
        ),
    ),
    FunctionTool(
        name="get_visualization_suggestions",
        description="Suggest chart types that suit the last query results",
        category="visualization",
        handler=get_visualization_suggestions,
    ),
]
