"""Typed arguments for each tool.

Arguments are first checked against the tool's input schema so that every
failing field is reported at once, then bound to one of these models.
"""

from pydantic import BaseModel, ConfigDict, Field


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class NoArgs(ToolArguments):
    """For tools that take no arguments."""


class QueryDataArgs(ToolArguments):
    query: str = Field(description="Natural language request or SQL statement")


class TableNameArgs(ToolArguments):
    table_name: str = Field(description="Table name, either schema.table or just table")


class SearchTablesArgs(ToolArguments):
    keyword: str = Field(description="Keyword to look for in table names")


class SchemaArgs(ToolArguments):
    schema_name: str = Field(alias="schema", description="Schema name")


class SchemaTableArgs(ToolArguments):
    schema_name: str = Field(alias="schema", description="Schema name")
    table: str = Field(description="Table name")


class MetadataArgs(ToolArguments):
    schema_name: str | None = Field(default=None, alias="schema")
    table: str | None = None
