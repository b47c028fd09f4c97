from flowpilot.models import WorkflowGraph
from flowpilot.service_ports import DEFAULT_SERVICE_CONTRACT, ServiceInputs, ServicePortContract
from flowpilot.verification import check_connection_types

from conftest import agent_workflow


def _codes(issues):
    return [issue.code for issue in issues]


def test_well_typed_agent_workflow_passes():
    graph = WorkflowGraph.model_validate(agent_workflow())

    assert check_connection_types(graph) == []


def test_model_wired_into_memory_port_is_rejected():
    raw = agent_workflow()
    raw["connections"][1]["targetInput"] = "memoryService"
    graph = WorkflowGraph.model_validate(raw)

    issues = check_connection_types(graph)

    assert "SERVICE_PORT_MISMATCH" in _codes(issues)
    assert any("targetInput must be 'modelService'" in issue.message for issue in issues)
    # modelService is now absent from the agent's inputs as well
    assert "MISSING_SERVICE_INPUT" in _codes(issues)


def test_service_edge_with_main_source_output_names_expected_port():
    raw = agent_workflow()
    raw["connections"][2]["sourceOutput"] = "main"
    graph = WorkflowGraph.model_validate(raw)

    issues = check_connection_types(graph)

    assert len(issues) == 1
    assert issues[0].field == "sourceOutput"
    assert "sourceOutput must be 'memoryService'" in issues[0].message


def test_missing_model_service_input_names_node_and_input():
    raw = agent_workflow()
    raw["nodes"] = [n for n in raw["nodes"] if n["id"] != "model_1"]
    raw["connections"] = [c for c in raw["connections"] if c["sourceNodeId"] != "model_1"]
    graph = WorkflowGraph.model_validate(raw)

    issues = check_connection_types(graph)

    assert _codes(issues) == ["MISSING_SERVICE_INPUT"]
    assert "agent_1" in issues[0].message
    assert "modelService" in issues[0].message


def test_tool_suffix_maps_to_tool_service():
    graph = WorkflowGraph.model_validate(
        {
            "nodes": [
                {"id": "agent", "type": "ai-agent"},
                {"id": "model", "type": "openai-model"},
                {"id": "search", "type": "web-search-tool"},
            ],
            "connections": [
                {"sourceNodeId": "model", "sourceOutput": "modelService", "targetNodeId": "agent", "targetInput": "modelService"},
                {"sourceNodeId": "search", "sourceOutput": "toolService", "targetNodeId": "agent", "targetInput": "memoryService"},
            ],
        }
    )

    issues = check_connection_types(graph)

    assert _codes(issues) == ["SERVICE_PORT_MISMATCH"]
    assert "toolService" in issues[0].message


def test_contract_can_be_extended_from_node_type_descriptors(node_types):
    contract = ServicePortContract().extended_with(node_types)

    assert contract.service_output("window-memory") == "memoryService"
    assert contract.required_inputs("ai-agent") == ("modelService",)
    assert contract.service_inputs("ai-agent").accepts("toolService")


def test_static_table_wins_over_descriptors():
    contract = ServicePortContract(inputs={"ai-agent": ServiceInputs(required=("modelService", "memoryService"))})
    extended = contract.extended_with(
        [{"identifier": "ai-agent", "serviceInputs": [{"name": "modelService", "required": True}]}]
    )

    assert extended.required_inputs("ai-agent") == ("modelService", "memoryService")
    assert DEFAULT_SERVICE_CONTRACT.service_output("http-request") is None
