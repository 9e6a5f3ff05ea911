"""Tests for doable.tools — the tool catalogue offered to the model."""

from doable.tools import DESCRIPTIONS, MUTATION_TOOLS, READ_TOOLS, tool_definitions, tool_names


class TestToolNames:
    def test_every_tool_described(self) -> None:
        assert set(tool_names()) == set(DESCRIPTIONS)

    def test_no_overlap(self) -> None:
        assert not set(MUTATION_TOOLS) & set(READ_TOOLS)


class TestToolDefinitions:
    def test_shape(self) -> None:
        definitions = {d["name"]: d for d in tool_definitions()}
        create = definitions["createIssue"]
        assert create["description"] == DESCRIPTIONS["createIssue"]
        assert create["parameters"]["type"] == "object"
        assert "title" not in create["parameters"]
        assert "title" in create["parameters"]["properties"]

    def test_camel_case_properties(self) -> None:
        definitions = {d["name"]: d for d in tool_definitions()}
        properties = definitions["createIssue"]["parameters"]["properties"]
        assert "projectId" in properties
        assert "workflowStateId" in properties
        assert "labelIds" in properties

    def test_read_tool_parameters(self) -> None:
        definitions = {d["name"]: d for d in tool_definitions()}
        assert "issueId" in definitions["getIssue"]["parameters"]["properties"]
        assert definitions["listProjects"]["parameters"]["properties"] == {}
