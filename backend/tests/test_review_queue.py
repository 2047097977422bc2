"""Tests for the manual review queue workflow."""

import pytest

from exportgate.errors import DetectionResultNotFound, InvalidReviewTransition, ReviewItemNotFound
from exportgate.services.compliance_gate import ComplianceGate


@pytest.mark.asyncio
class TestReviewWorkflow:
    async def test_submit_and_list(self, review_queue, shipment, add_detection):
        row = await add_detection(shipment.shipment_id, "AI module", ["STA_2010"], confidence=65)

        item = await review_queue.submit_for_review(row.result_id, "borderline match", "analyst", priority="high")

        assert item.queue_id.startswith("REV-")
        assert item.status == "pending"
        assert row.manual_review_required is True
        assert row.manual_review_status == "pending"

        pending = await review_queue.list_pending(shipment_id=shipment.shipment_id)
        assert [p.queue_id for p in pending] == [item.queue_id]

    async def test_unknown_result(self, review_queue):
        with pytest.raises(DetectionResultNotFound):
            await review_queue.submit_for_review("missing", "reason", "analyst")

    async def test_unknown_queue_id(self, review_queue):
        with pytest.raises(ReviewItemNotFound):
            await review_queue.assign("REV-NOPE", "reviewer")

    async def test_confirm_keeps_item_blocked(self, review_queue, gate, shipment, add_detection):
        row = await add_detection(shipment.shipment_id, "AI module", ["STA_2010"], confidence=65)
        item = await review_queue.submit_for_review(row.result_id, "borderline", "analyst")

        await review_queue.assign(item.queue_id, "reviewer@example.com")
        done = await review_queue.complete(item.queue_id, "confirmed", "reviewer@example.com", "looks right")

        assert done.status == "completed"
        assert done.decision == "confirmed"
        assert row.manual_review_status == "completed"
        assert row.compliance_state == "BLOCKED"
        assert (await gate.evaluate(shipment.shipment_id)).export_permitted is False

    async def test_override_clears_item(self, review_queue, gate, shipment, add_detection):
        row = await add_detection(shipment.shipment_id, "Office printer", ["STA_2010"], confidence=62)
        item = await review_queue.submit_for_review(row.result_id, "likely false positive", "analyst")

        await review_queue.complete(item.queue_id, "overridden", "reviewer@example.com")

        assert row.compliance_state == "OVERRIDDEN"
        assert row.export_blocked is False
        state = await gate.evaluate(shipment.shipment_id)
        assert state.export_permitted is True
        assert state.overridden_items == ["Office printer"]

    async def test_overridden_is_terminal_for_gate(self, review_queue, gate, shipment, add_detection):
        row = await add_detection(shipment.shipment_id, "Office printer", ["STA_2010"])
        item = await review_queue.submit_for_review(row.result_id, "false positive", "analyst")
        await review_queue.complete(item.queue_id, "overridden", "reviewer")

        await gate.check_compliance(shipment.shipment_id)

        assert row.compliance_state == "OVERRIDDEN"

    async def test_completed_is_terminal(self, review_queue, shipment, add_detection):
        row = await add_detection(shipment.shipment_id, "AI module", ["STA_2010"])
        item = await review_queue.submit_for_review(row.result_id, "check", "analyst")
        await review_queue.complete(item.queue_id, "confirmed", "reviewer")

        with pytest.raises(InvalidReviewTransition):
            await review_queue.assign(item.queue_id, "someone")
        with pytest.raises(InvalidReviewTransition):
            await review_queue.complete(item.queue_id, "overridden", "someone")

    async def test_invalid_decision(self, review_queue, shipment, add_detection):
        row = await add_detection(shipment.shipment_id, "AI module", ["STA_2010"])
        item = await review_queue.submit_for_review(row.result_id, "check", "analyst")

        with pytest.raises(InvalidReviewTransition):
            await review_queue.complete(item.queue_id, "maybe", "reviewer")

    async def test_queue_stats(self, review_queue, shipment, add_detection):
        first = await add_detection(shipment.shipment_id, "A", ["STA_2010"], index=0)
        second = await add_detection(shipment.shipment_id, "B", ["STA_2010"], index=1)
        a = await review_queue.submit_for_review(first.result_id, "check", "analyst")
        await review_queue.submit_for_review(second.result_id, "check", "analyst")
        await review_queue.assign(a.queue_id, "reviewer")

        assert await review_queue.get_queue_stats() == {"pending": 1, "in_review": 1, "completed": 0}

    async def test_gate_is_optional(self, db_session, core, shipment, add_detection):
        from exportgate.services.review_queue import ReviewQueue

        queue = ReviewQueue(db_session)
        row = await add_detection(shipment.shipment_id, "AI module", ["STA_2010"])
        item = await queue.submit_for_review(row.result_id, "check", "analyst")
        await queue.complete(item.queue_id, "overridden", "reviewer")

        state = await ComplianceGate(db_session, core.locks).evaluate(shipment.shipment_id)
        assert state.export_permitted is True
