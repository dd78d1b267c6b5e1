# =============================================================================
# Agents Package — LangGraph Orchestration
# =============================================================================
#   - retrieval.py: builds the augmented prompt from retrieved chunks
#   - dispatcher.py: function registry + model/function-call state machine
#   - policies.py: policy-status lookup, the example registered function
#   - orchestrator.py: recall → retrieve → dispatch → remember graph
# =============================================================================
