"""Static tool catalog and argument validation for ``tools/call``."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from polenta_mcp.errors import InvalidParamsError, UnknownOperationError
from polenta_mcp.models import InputSchema, PropertySchema, ToolDescriptor, ToolMetadata
from polenta_mcp.tools.arguments import (
    MetadataArgs,
    NoArgs,
    QueryDataArgs,
    SchemaArgs,
    SchemaTableArgs,
    SearchTablesArgs,
    TableNameArgs,
    ToolArguments,
)

MISSING_REQUIRED = "Missing required parameter"

_TYPE_CHECKS = {
    "string": lambda value: isinstance(value, str),
    "number": lambda value: isinstance(value, (int, float)) and not isinstance(value, bool),
    "boolean": lambda value: isinstance(value, bool),
}


def _string(description: str, *examples: str) -> PropertySchema:
    return PropertySchema(type="string", description=description, examples=examples)


_TABLE_NAME = _string(
    "Table name, either schema.table or just table",
    "customers",
    "default.sales",
)

TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="query_data",
        description=(
            "Run a natural language request or a SQL statement against the data lake. "
            "Example: 'Show sample data from sales' or 'SELECT * FROM sales LIMIT 10'"
        ),
        input_schema=InputSchema(
            properties={
                "query": _string(
                    "Natural language request or SQL statement",
                    "Lista de países",
                    "SELECT * FROM customers WHERE created_at >= DATE '2023-07-01'",
                    "Describe table customers",
                )
            },
            required=("query",),
        ),
        metadata=ToolMetadata(
            result_type="query_result",
            fields=("status", "execution_id", "timestamp", "user_message", "data", "row_count"),
            examples=(
                {"status": "success", "data": [{"customer_id": 1, "name": "Juan"}], "row_count": 1},
                {"status": "error", "user_message": "Query failed: line 1:8: mismatched input"},
            ),
            usage_examples=(
                "Show all tables",
                "Lista de vendedores",
                "SELECT * FROM sales LIMIT 10",
            ),
            tags=("query", "sql", "data"),
            version="1.2",
        ),
    ),
    ToolDescriptor(
        name="list_tables",
        description="List every table in the data lake, grouped by schema.",
        metadata=ToolMetadata(
            result_type="table_list",
            fields=("schemas",),
            examples=({"schemas": {"default": ["customers", "sales"]}},),
            usage_examples=("What tables are there?", "Show all tables"),
            tags=("metadata", "tables"),
            version="1.1",
        ),
    ),
    ToolDescriptor(
        name="accessible_tables",
        description="List the tables the configured user is allowed to query.",
        metadata=ToolMetadata(
            result_type="accessible_table_list",
            fields=("tables",),
            examples=({"tables": ["default.customers", "default.sales"]},),
            usage_examples=("Which tables can I access?", "Show accessible tables"),
            tags=("metadata", "tables", "access"),
        ),
    ),
    ToolDescriptor(
        name="describe_table",
        description=(
            "Return the column structure of a table. Example: 'Describe table customers'"
        ),
        input_schema=InputSchema(properties={"table_name": _TABLE_NAME}, required=("table_name",)),
        metadata=ToolMetadata(
            result_type="table_description",
            fields=("schema", "table", "columns"),
            examples=(
                {
                    "schema": "default",
                    "table": "customers",
                    "columns": [{"Column": "customer_id", "Type": "integer"}],
                },
            ),
            usage_examples=("Describe table customers", "What columns are in sales?"),
            tags=("metadata", "tables", "structure"),
            version="1.1",
        ),
    ),
    ToolDescriptor(
        name="sample_data",
        description="Return up to 10 example rows from a table.",
        input_schema=InputSchema(properties={"table_name": _TABLE_NAME}, required=("table_name",)),
        metadata=ToolMetadata(
            result_type="sample_data",
            fields=("schema", "table", "data", "row_count"),
            examples=(
                {
                    "schema": "default",
                    "table": "customers",
                    "data": [{"customer_id": 1, "name": "Juan"}, {"customer_id": 2, "name": "Ana"}],
                    "row_count": 2,
                },
            ),
            usage_examples=("Show sample data from customers", "Preview default.sales"),
            tags=("data", "sample", "tables"),
            version="1.1",
        ),
    ),
    ToolDescriptor(
        name="search_tables",
        description="Find tables whose name contains a keyword.",
        input_schema=InputSchema(
            properties={
                "keyword": _string("Keyword to look for in table names", "sales", "customer")
            },
            required=("keyword",),
        ),
        metadata=ToolMetadata(
            result_type="table_search",
            fields=("keyword", "matching_tables"),
            examples=({"keyword": "sales", "matching_tables": ["default.sales", "default.sales_2023"]},),
            usage_examples=("Find tables containing sales", "Search for customer tables"),
            tags=("search", "tables", "metadata"),
            version="1.1",
        ),
    ),
    ToolDescriptor(
        name="get_suggestions",
        description="Get example requests to get started.",
        metadata=ToolMetadata(
            result_type="suggestions",
            fields=("suggestions", "message"),
            usage_examples=("What can I ask?",),
            tags=("help", "suggestions"),
            version="1.1",
        ),
    ),
    ToolDescriptor(
        name="schemas",
        description="List schemas from the metadata cache.",
        metadata=ToolMetadata(
            result_type="schema_list", fields=("schemas",), tags=("metadata", "cache")
        ),
    ),
    ToolDescriptor(
        name="tables",
        description="List the tables of a schema from the metadata cache.",
        input_schema=InputSchema(
            properties={"schema": _string("Schema name", "default")},
            required=("schema",),
        ),
        metadata=ToolMetadata(
            result_type="schema_tables", fields=("schema", "tables"), tags=("metadata", "cache")
        ),
    ),
    ToolDescriptor(
        name="columns",
        description="List the column names of a table from the metadata cache.",
        input_schema=InputSchema(
            properties={
                "schema": _string("Schema name", "default"),
                "table": _string("Table name", "customers"),
            },
            required=("schema", "table"),
        ),
        metadata=ToolMetadata(
            result_type="table_columns",
            fields=("schema", "table", "columns"),
            tags=("metadata", "cache"),
        ),
    ),
    ToolDescriptor(
        name="metadata",
        description=(
            "Navigate metadata: no arguments lists schemas, a schema lists its tables, "
            "a schema and a table describe the table's columns."
        ),
        input_schema=InputSchema(
            properties={
                "schema": _string("Optional schema name", "default"),
                "table": _string("Optional table name (requires schema)", "customers"),
            },
        ),
        metadata=ToolMetadata(
            result_type="metadata",
            fields=("schemas", "schema", "tables", "table", "columns"),
            tags=("metadata", "navigation"),
        ),
    ),
)

ARGUMENT_MODELS: dict[str, type[ToolArguments]] = {
    "query_data": QueryDataArgs,
    "list_tables": NoArgs,
    "accessible_tables": NoArgs,
    "describe_table": TableNameArgs,
    "sample_data": TableNameArgs,
    "search_tables": SearchTablesArgs,
    "get_suggestions": NoArgs,
    "schemas": NoArgs,
    "tables": SchemaArgs,
    "columns": SchemaTableArgs,
    "metadata": MetadataArgs,
}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


class ToolRegistry:
    """Immutable catalog of tools, keyed by name."""

    def __init__(self, tools: tuple[ToolDescriptor, ...] = TOOLS):
        self._tools = {tool.name: tool for tool in tools}

    def list_tools(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def get(self, name: str) -> ToolDescriptor:
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownOperationError(f"Unknown tool: {name}", details={"tool": name})
        return tool

    def validation_errors(self, tool: ToolDescriptor, arguments: dict[str, Any]) -> dict[str, str]:
        """Check arguments against the tool's input schema.

        Every failing field is reported. Declared types other than string,
        number and boolean are not checked.
        """
        errors: dict[str, str] = {}
        schema = tool.input_schema
        for field_name in schema.required:
            if _is_blank(arguments.get(field_name)):
                errors[field_name] = MISSING_REQUIRED

        for field_name, value in arguments.items():
            prop = schema.properties.get(field_name)
            if prop is None or value is None or field_name in errors:
                continue
            check = _TYPE_CHECKS.get(prop.type)
            if check is not None and not check(value):
                errors[field_name] = f"Invalid type: expected {prop.type}"
        return errors

    def bind_arguments(self, name: str, arguments: dict[str, Any]) -> ToolArguments:
        """Validate arguments for a tool and bind them to its typed model.

        Raises:
            UnknownOperationError: If no tool has this name
            InvalidParamsError: With every failing field listed in ``details``
        """
        tool = self.get(name)
        errors = self.validation_errors(tool, arguments)
        if errors:
            summary = ", ".join(f"{field}: {problem}" for field, problem in errors.items())
            raise InvalidParamsError(f"Invalid params: {summary}", details=errors)

        model = ARGUMENT_MODELS.get(name, NoArgs)
        try:
            return model.model_validate(arguments)
        except ValidationError as e:
            details = {
                ".".join(str(part) for part in err["loc"]) or name: err["msg"]
                for err in e.errors()
            }
            raise InvalidParamsError(f"Invalid params for tool {name}", details=details) from e
