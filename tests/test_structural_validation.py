import copy

from flowpilot.verification import NO_WORKFLOW_MESSAGE, validate_workflow_graph

from conftest import agent_workflow, simple_workflow


def _codes(issues):
    return [issue.code for issue in issues]


def test_missing_graph_reports_single_error():
    report = validate_workflow_graph(None)

    assert report.to_tool_result() == {
        "valid": False,
        "errors": [NO_WORKFLOW_MESSAGE],
        "warnings": [],
        "suggestions": ["Fix the errors above, then call validate_workflow again."],
    }


def test_shape_errors_short_circuit_other_checks():
    report = validate_workflow_graph({"nodes": {}, "connections": "nope"})

    assert _codes(report.errors) == ["INVALID_SHAPE", "INVALID_SHAPE"]
    assert report.warnings == []


def test_non_object_workflow_is_a_shape_error():
    report = validate_workflow_graph(["not", "a", "graph"])

    assert _codes(report.errors) == ["INVALID_SHAPE"]


def test_valid_workflow_is_ready_to_finalize(node_registry):
    result = validate_workflow_graph(simple_workflow(), node_registry=node_registry).to_tool_result()

    assert result["valid"] is True
    assert result["errors"] == []
    assert result["warnings"] == []
    assert result["suggestions"] == ["The workflow is valid and ready to finalize with build_workflow."]


def test_missing_trigger_is_an_error():
    raw = simple_workflow()
    raw["nodes"] = raw["nodes"][1:]
    raw["connections"] = []

    report = validate_workflow_graph(raw)

    assert "MISSING_TRIGGER" in _codes(report.errors)


def test_dangling_connection_and_orphan_warning():
    raw = simple_workflow()
    raw["nodes"].append({"id": "lonely", "type": "code", "parameters": {"code": "x"}})
    raw["connections"].append({"sourceNodeId": "http_1", "targetNodeId": "ghost"})

    report = validate_workflow_graph(raw)

    assert _codes(report.errors) == ["UNKNOWN_NODE_REFERENCE"]
    assert "ghost" in report.errors[0].message
    assert _codes(report.warnings) == ["ORPHAN_NODE"]
    assert report.to_tool_result()["suggestions"] == ["Fix the errors above, then call validate_workflow again."]


def test_duplicate_connection_is_only_a_warning():
    raw = simple_workflow()
    raw["connections"].append(dict(raw["connections"][0], id="c2"))

    report = validate_workflow_graph(raw)

    assert report.valid
    assert _codes(report.warnings) == ["DUPLICATE_CONNECTION"]
    assert report.suggestions() == [
        "Address the warnings if they matter, then call build_workflow to finalize."
    ]


def test_required_params_checked_against_registry(node_registry):
    raw = simple_workflow()
    raw["nodes"][1]["parameters"] = {"url": "   "}

    report = validate_workflow_graph(raw, node_registry=node_registry)

    assert _codes(report.errors) == ["MISSING_REQUIRED_PARAM"]
    assert report.errors[0].field == "parameters.url"


def test_required_params_with_default_are_not_reported(node_registry):
    raw = simple_workflow()
    raw["nodes"][0] = {"id": "trigger_1", "type": "schedule-trigger"}

    report = validate_workflow_graph(raw, node_registry=node_registry)

    assert report.valid


def test_unavailable_registry_skips_param_checks(broken_node_registry):
    raw = simple_workflow()
    raw["nodes"][1]["parameters"] = {}

    report = validate_workflow_graph(raw, node_registry=broken_node_registry)

    assert report.valid


def test_service_contract_enforced_during_validation(node_registry):
    raw = agent_workflow()
    raw["connections"][1]["targetInput"] = "main"

    report = validate_workflow_graph(raw, node_registry=node_registry)

    assert "SERVICE_PORT_MISMATCH" in _codes(report.errors)
    assert "MISSING_SERVICE_INPUT" in _codes(report.errors)


def test_schema_errors_are_reported_not_raised():
    report = validate_workflow_graph({"nodes": [{"id": "a"}], "connections": []})

    assert _codes(report.errors) == ["INVALID_SCHEMA"]
    assert "nodes.0.type" in report.errors[0].message


def test_revalidation_is_idempotent_and_does_not_mutate_input(node_registry):
    raw = agent_workflow()
    raw["nodes"].append({"id": "orphan", "type": "code"})
    snapshot = copy.deepcopy(raw)

    first = validate_workflow_graph(raw, node_registry=node_registry).to_tool_result()
    second = validate_workflow_graph(raw, node_registry=node_registry).to_tool_result()

    assert first == second
    assert raw == snapshot
