"""Tests for tool call batching."""

from agentloop.models.provider import ToolCall
from agentloop.services.scheduling import PlannedCall, plan_batches


def _planned(index: int, *locations: str) -> PlannedCall:
    return PlannedCall(
        index=index,
        call=ToolCall(id=f"c{index}", name="read_file"),
        locations=frozenset(locations),
    )


def _indices(batches):
    return [[p.index for p in batch] for batch in batches]


class TestPlanBatches:
    def test_empty(self):
        assert plan_batches([]) == []

    def test_disjoint_calls_share_a_batch(self):
        batches = plan_batches([_planned(0, "/a"), _planned(1, "/b"), _planned(2, "/c")])
        assert _indices(batches) == [[0, 1, 2]]

    def test_overlap_starts_new_batch(self):
        batches = plan_batches([_planned(0, "/a"), _planned(1, "/b"), _planned(2, "/a")])
        assert _indices(batches) == [[0, 1], [2]]

    def test_unknown_locations_run_alone(self):
        batches = plan_batches([_planned(0, "/a"), _planned(1), _planned(2, "/b"), _planned(3, "/c")])
        assert _indices(batches) == [[0], [1], [2, 3]]

    def test_request_order_preserved(self):
        planned = [_planned(i, f"/f{i % 2}") for i in range(4)]
        batches = plan_batches(planned)
        assert [p.index for batch in batches for p in batch] == [0, 1, 2, 3]
        assert _indices(batches) == [[0, 1], [2, 3]]
