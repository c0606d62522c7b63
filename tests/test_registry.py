"""Tests for the tool catalog and argument validation."""

import pytest

from polenta_mcp.errors import InvalidParamsError, UnknownOperationError
from polenta_mcp.models import InputSchema, PropertySchema, ToolDescriptor
from polenta_mcp.tools.arguments import MetadataArgs, SchemaTableArgs, TableNameArgs
from polenta_mcp.tools.registry import ARGUMENT_MODELS, MISSING_REQUIRED, TOOLS, ToolRegistry

EXPECTED_TOOLS = {
    "query_data": ["query"],
    "list_tables": [],
    "accessible_tables": [],
    "describe_table": ["table_name"],
    "sample_data": ["table_name"],
    "search_tables": ["keyword"],
    "get_suggestions": [],
    "schemas": [],
    "tables": ["schema"],
    "columns": ["schema", "table"],
    "metadata": [],
}


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def typed_tool():
    return ToolDescriptor(
        name="typed",
        description="Tool with every checked type",
        input_schema=InputSchema(
            properties={
                "label": PropertySchema(type="string"),
                "limit": PropertySchema(type="number"),
                "verbose": PropertySchema(type="boolean"),
                "filters": PropertySchema(type="array"),
            },
            required=("label", "limit"),
        ),
    )


class TestCatalog:
    def test_every_tool_is_listed(self, registry):
        tools = {tool.name: list(tool.input_schema.required) for tool in registry.list_tools()}
        assert tools == EXPECTED_TOOLS

    def test_every_tool_has_an_argument_model(self):
        assert set(ARGUMENT_MODELS) == {tool.name for tool in TOOLS}

    def test_descriptor_serialization(self, registry):
        data = registry.get("describe_table").to_dict()

        assert data["inputSchema"]["type"] == "object"
        assert data["inputSchema"]["required"] == ["table_name"]
        assert data["inputSchema"]["properties"]["table_name"]["type"] == "string"
        assert data["metadata"]["result_type"] == "table_description"

    def test_unknown_tool(self, registry):
        with pytest.raises(UnknownOperationError, match="Unknown tool: drop_tables"):
            registry.get("drop_tables")

    @pytest.mark.parametrize("tool", TOOLS, ids=lambda tool: tool.name)
    def test_listed_required_fields_are_reported_missing(self, registry, tool):
        """Feeding an empty argument map back reports every required field."""
        listed = registry.get(tool.name).to_dict()["inputSchema"]["required"]

        errors = registry.validation_errors(tool, {})

        assert errors == {field: MISSING_REQUIRED for field in listed}


class TestValidation:
    def test_collects_every_failure(self, registry, typed_tool):
        errors = registry.validation_errors(
            typed_tool, {"label": "", "verbose": "yes", "filters": "anything"}
        )

        assert errors == {
            "label": MISSING_REQUIRED,
            "limit": MISSING_REQUIRED,
            "verbose": "Invalid type: expected boolean",
        }

    def test_null_counts_as_missing(self, registry, typed_tool):
        errors = registry.validation_errors(typed_tool, {"label": None, "limit": 3})
        assert errors == {"label": MISSING_REQUIRED}

    @pytest.mark.parametrize("value", [3, 2.5])
    def test_numbers(self, registry, typed_tool, value):
        assert registry.validation_errors(typed_tool, {"label": "x", "limit": value}) == {}

    def test_bool_is_not_a_number(self, registry, typed_tool):
        errors = registry.validation_errors(typed_tool, {"label": "x", "limit": True})
        assert errors == {"limit": "Invalid type: expected number"}

    def test_wrong_string_type(self, registry, typed_tool):
        errors = registry.validation_errors(typed_tool, {"label": 7, "limit": 1})
        assert errors == {"label": "Invalid type: expected string"}

    def test_unknown_declared_type_passes(self, registry, typed_tool):
        errors = registry.validation_errors(
            typed_tool, {"label": "x", "limit": 1, "filters": {"a": 1}}
        )
        assert errors == {}

    def test_undeclared_arguments_are_ignored(self, registry, typed_tool):
        errors = registry.validation_errors(typed_tool, {"label": "x", "limit": 1, "extra": 5})
        assert errors == {}


class TestBindArguments:
    def test_binds_typed_model(self, registry):
        args = registry.bind_arguments("describe_table", {"table_name": "crm.customers"})

        assert isinstance(args, TableNameArgs)
        assert args.table_name == "crm.customers"

    def test_schema_alias(self, registry):
        args = registry.bind_arguments("columns", {"schema": "crm", "table": "customers"})

        assert isinstance(args, SchemaTableArgs)
        assert args.schema_name == "crm"
        assert args.table == "customers"

    def test_optional_arguments(self, registry):
        args = registry.bind_arguments("metadata", {})

        assert isinstance(args, MetadataArgs)
        assert args.schema_name is None
        assert args.table is None

    def test_aggregate_error(self, registry):
        with pytest.raises(InvalidParamsError) as exc_info:
            registry.bind_arguments("columns", {"table": 5})

        error = exc_info.value
        assert error.message.startswith("Invalid params:")
        assert error.details == {
            "schema": MISSING_REQUIRED,
            "table": "Invalid type: expected string",
        }

    def test_unknown_tool(self, registry):
        with pytest.raises(UnknownOperationError):
            registry.bind_arguments("nope", {})
