# =============================================================================
# Policy Status Lookup — Example Function for the Tool Dispatcher
# =============================================================================
#
# A fixed policy-id → status dataset exposed to the model as the
# `policy_status` function. Unknown ids raise NotFound, which the dispatcher
# reports to the model as an explicit not_found result.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field

from ragchat.agents.dispatcher import FunctionDescriptor
from ragchat.exceptions import NotFound

logger = logging.getLogger(__name__)

POLICY_DATASET: Mapping[str, str] = MappingProxyType({
    "H001": "pending",
    "H002": "approved",
    "H003": "rejected",
})


class PolicyQuery(BaseModel):
    """Arguments of one policy_status call."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, description="Policy identifier, e.g. H001")


class PolicyStatus(BaseModel):
    """Current status of a policy."""

    name: str = Field(..., description="Status name: pending, approved, rejected")


class PolicyStatusLookup:
    """Handler over a fixed dataset."""

    def __init__(self, dataset: Mapping[str, str] = POLICY_DATASET) -> None:
        self._dataset = dict(dataset)

    def __call__(self, query: PolicyQuery) -> PolicyStatus:
        logger.info("Policy status lookup: %s", query.id)
        status = self._dataset.get(query.id)
        if status is None:
            raise NotFound(query.id)
        return PolicyStatus(name=status)


def policy_status_function(
    dataset: Mapping[str, str] = POLICY_DATASET,
) -> FunctionDescriptor:
    """Descriptor for registering the lookup with a FunctionRegistry."""
    return FunctionDescriptor(
        name="policy_status",
        description=(
            "Get the status of a single policy. Call once per policy id; "
            "several calls may be made in the same turn."
        ),
        input_type=PolicyQuery,
        output_type=PolicyStatus,
        handler=PolicyStatusLookup(dataset),
    )
