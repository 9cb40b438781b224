"""Unit tests for in-file linear footage merging."""

from __future__ import annotations

from takeoff.models import ComponentType, ParsedRow
from takeoff.pipeline.aggregate import AggregateDraft, AggregateOutcome, AggregateStats, merge_aggregate_rows


def _row(drawing="P-002", type=ComponentType.PIPE, qty=10, code="PIPE-CS", size="4"):
    return ParsedRow(drawing=drawing, type=type, qty=qty, commodity_code=code, size=size)


class TestMergeAggregateRows:
    """Test folding pipe rows into drafts."""

    def test_rows_sharing_a_pipe_id_are_summed(self):
        drafts = merge_aggregate_rows([(1, _row(qty=10)), (2, _row(drawing="p-002", qty=15))])

        (draft,) = drafts
        assert draft.pipe_id == "P-002-4-PIPE-CS-AGG"
        assert draft.total_linear_feet == 25
        assert draft.line_numbers == ["1", "2"]
        assert draft.row_number == 1

    def test_distinct_sizes_stay_separate(self):
        drafts = merge_aggregate_rows([(1, _row(size="4")), (2, _row(size="6"))])
        assert [d.pipe_id for d in drafts] == ["P-002-4-PIPE-CS-AGG", "P-002-6-PIPE-CS-AGG"]

    def test_pipe_and_threaded_pipe_do_not_merge(self):
        drafts = merge_aggregate_rows(
            [(1, _row()), (2, _row(type=ComponentType.THREADED_PIPE))]
        )
        assert [d.component_type for d in drafts] == [ComponentType.PIPE, ComponentType.THREADED_PIPE]

    def test_non_aggregate_rows_are_ignored(self):
        drafts = merge_aggregate_rows([(1, _row(type=ComponentType.VALVE, qty=2))])
        assert drafts == []

    def test_line_number_counted_once(self):
        draft = merge_aggregate_rows([(3, _row(qty=5))])[0]
        draft.add("3", 99)

        assert draft.total_linear_feet == 5


class TestAggregateStats:
    """Test outcome bookkeeping."""

    def test_skipped_outcomes_are_not_counted_by_type(self):
        draft = AggregateDraft(
            component_type=ComponentType.PIPE,
            key=merge_aggregate_rows([(1, _row())])[0].key,
            row_number=1,
            row=_row(),
        )
        stats = AggregateStats()

        stats.record(draft, AggregateOutcome.CREATED)
        stats.record(draft, AggregateOutcome.UPDATED)
        stats.record(draft, AggregateOutcome.SKIPPED)

        assert (stats.created, stats.updated, stats.skipped) == (1, 1, 1)
        assert stats.by_type == {"pipe": 2}
