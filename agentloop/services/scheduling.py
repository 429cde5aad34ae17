"""Group one turn's tool calls into batches that may run concurrently."""

from __future__ import annotations

from dataclasses import dataclass

from agentloop.models.provider import ToolCall
from agentloop.models.tool import ToolResult
from agentloop.services.tools.base import BaseInvocation


@dataclass
class PlannedCall:
    """A requested tool call after name resolution and validation.

    Exactly one of ``invocation`` / ``immediate`` is set: calls that failed
    resolution or validation carry their error result and never run.
    """

    index: int
    call: ToolCall
    invocation: BaseInvocation | None = None
    immediate: ToolResult | None = None
    locations: frozenset[str] = frozenset()


def plan_batches(planned: list[PlannedCall]) -> list[list[PlannedCall]]:
    """Split calls, in request order, into sequential batches.

    Consecutive calls whose location sets are non-empty and pairwise
    disjoint share a batch. A call with no declared locations could touch
    anything, so it always gets a batch of its own.
    """
    batches: list[list[PlannedCall]] = []
    current: list[PlannedCall] = []
    claimed: set[str] = set()

    for p in planned:
        if not p.locations:
            if current:
                batches.append(current)
                current, claimed = [], set()
            batches.append([p])
            continue
        if current and not claimed.isdisjoint(p.locations):
            batches.append(current)
            current, claimed = [], set()
        current.append(p)
        claimed |= p.locations

    if current:
        batches.append(current)
    return batches
