from typing import Dict, Any
import os

import yaml

from datamind.services.snowflake_service import row_value
from datamind.tools.base import FunctionTool, params_schema, string_param
from datamind.utils.formatting import numbered_list
from datamind.utils.validators import safe_identifier, qualified_name

YAML_EXTENSIONS = (".yaml", ".yml", ".yaml.gz", ".yml.gz")
YAML_PREVIEW_CHARS = 4000

NO_STAGE_MESSAGE = "No stage selected. Please select a stage first."

async def get_stages(env, context, params: Dict[str, Any]) -> str:
    env.require_selection(context)
    location = qualified_name(context.current_database, context.current_schema)
    result = await env.snowflake.execute_query(context.connection_id, f"SHOW STAGES IN SCHEMA {location}")
    names = [row_value(r, "name") for r in result.rows]
    await env.contexts.update_context(context, stages=names)
    if not names:
        return f"No stages found in {location}."
    return f"Stages in {location}:\n\n{numbered_list(names)}\n\nSay `use stage <name>` to select one."

async def select_stage(env, context, params: Dict[str, Any]) -> str:
    env.require_selection(context)
    stage = safe_identifier(params.get("stage_name", ""), "stage")
    await env.contexts.update_context(context, current_stage=stage)
    return f"Now using stage **{stage}**. Say `show yaml files` to list its semantic models."

async def get_yaml_files(env, context, params: Dict[str, Any]) -> str:
    env.require_selection(context)
    if not context.current_stage:
        return NO_STAGE_MESSAGE
    stage = qualified_name(context.current_database, context.current_schema, context.current_stage)
    result = await env.snowflake.execute_query(context.connection_id, f"LIST @{stage}")
    files = [
        os.path.basename(row_value(r, "name") or "")
        for r in result.rows
        if (row_value(r, "name") or "").lower().endswith(YAML_EXTENSIONS)
    ]
    if not files:
        return f"No YAML files found in stage {context.current_stage}."
    return (
        f"YAML files in {context.current_stage}:\n\n{numbered_list(files)}\n\n"
        "Say `load yaml <file>` to load one."
    )

async def load_yaml_file(env, context, params: Dict[str, Any]) -> str:
    env.require_selection(context)
    if not context.current_stage:
        return NO_STAGE_MESSAGE
    filename = os.path.basename(params.get("filename", "").strip())
    if not filename.lower().endswith(YAML_EXTENSIONS):
        return f"{filename or 'That file'} is not a YAML file."

    content = await env.snowflake.download_stage_file(
        context.connection_id,
        context.current_stage,
        filename,
        context.current_database,
        context.current_schema,
    )
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        return f"Could not parse {filename}: {e}"

    await env.contexts.update_context(context, yaml_content=content, yaml_filename=filename)

    lines = [f"Loaded **{filename}** ({len(content)} characters)."]
    if isinstance(document, dict):
        if document.get("name"):
            lines.append(f"- Model: {document['name']}")
        tables = document.get("tables")
        if isinstance(tables, list):
            lines.append(f"- Tables defined: {len(tables)}")
        lines.append(f"- Top-level keys: {', '.join(map(str, document.keys()))}")
    return "\n".join(lines)

async def get_yaml_content(env, context, params: Dict[str, Any]) -> str:
    if not context.yaml_content:
        return "No YAML file loaded. Say `load yaml <file>` first."
    content = context.yaml_content
    suffix = ""
    if len(content) > YAML_PREVIEW_CHARS:
        content = content[:YAML_PREVIEW_CHARS]
        suffix = f"\n\n... truncated, {len(context.yaml_content) - YAML_PREVIEW_CHARS} more characters."
    return f"**{context.yaml_filename}**\n\n```yaml\n{content}\n```{suffix}"

TOOLS = [
    FunctionTool(
        name="get_stages",
        description="List the stages of the selected schema",
        category="stage",
        handler=get_stages,
    ),
    FunctionTool(
        name="select_stage",
        description="Select the stage that holds semantic model YAML files",
        category="stage",
        handler=select_stage,
        parameters=params_schema(["stage_name"], stage_name=string_param("Stage name")),
    ),
    FunctionTool(
        name="get_yaml_files",
        description="List YAML files in the selected stage",
        category="stage",
        handler=get_yaml_files,
    ),
    FunctionTool(
        name="load_yaml_file",
        description="Load a YAML semantic model from the selected stage into the session",
        category="stage",
        handler=load_yaml_file,
        parameters=params_schema(["filename"], filename=string_param("File name, e.g. model.yaml")),
    ),
    FunctionTool(
        name="get_yaml_content",
        description="Show the loaded YAML semantic model",
        category="stage",
        handler=get_yaml_content,
    ),
]
