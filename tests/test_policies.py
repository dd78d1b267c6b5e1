# =============================================================================
# Unit Tests — Policy Status Function (end-to-end through the dispatcher)
# =============================================================================

import pytest
from conftest import ScriptedLLM, _run, answer, function_calls

from ragchat.agents.dispatcher import FunctionRegistry, ToolDispatcher, ToolStatus
from ragchat.agents.policies import (
    POLICY_DATASET,
    PolicyQuery,
    PolicyStatusLookup,
    policy_status_function,
)
from ragchat.exceptions import NotFound


class TestPolicyStatusLookup:
    @pytest.mark.parametrize("policy_id, status", sorted(POLICY_DATASET.items()))
    def test_known_ids(self, policy_id, status):
        assert PolicyStatusLookup()(PolicyQuery(id=policy_id)).name == status

    def test_unknown_id_raises_not_found(self):
        with pytest.raises(NotFound, match="H004"):
            PolicyStatusLookup()(PolicyQuery(id="H004"))

    def test_custom_dataset(self):
        lookup = PolicyStatusLookup({"P1": "lapsed"})
        assert lookup(PolicyQuery(id="P1")).name == "lapsed"

    def test_descriptor(self):
        descriptor = policy_status_function()
        assert descriptor.name == "policy_status"
        assert "status of a single policy" in descriptor.description
        assert descriptor.schema().parameters["required"] == ["id"]


class TestPolicyScenario:
    """The model asks for four policies at once; one of them is unknown."""

    def test_every_policy_reported_in_request_order(self):
        llm = ScriptedLLM(
            function_calls(
                ("policy_status", {"id": "H001"}),
                ("policy_status", {"id": "H002"}),
                ("policy_status", {"id": "H003"}),
                ("policy_status", {"id": "H004"}),
            ),
            answer(
                "H001 is pending, H002 is approved, H003 is rejected and "
                "H004 was not found."
            ),
        )
        dispatcher = ToolDispatcher(llm, FunctionRegistry([policy_status_function()]))

        outcome = _run(dispatcher.run("system", [
            {"role": "user", "content": "What is the status of H001, H002, H003 and H004?"},
        ]))

        assert [(r.arguments["id"], r.status) for r in outcome.tool_results] == [
            ("H001", ToolStatus.OK),
            ("H002", ToolStatus.OK),
            ("H003", ToolStatus.OK),
            ("H004", ToolStatus.NOT_FOUND),
        ]
        assert [r.output for r in outcome.tool_results[:3]] == [
            {"name": "pending"}, {"name": "approved"}, {"name": "rejected"},
        ]
        for policy_id in ("H001", "H002", "H003", "H004"):
            assert policy_id in outcome.answer
            assert policy_id in llm.calls[1]["messages"][-1]["content"]
