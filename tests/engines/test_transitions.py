"""
Tests for approval_engines.transitions.apply_transition.

Tests cover:
- actor stamping is write-once
- rejection reason required and stored
- escalation flag set once, status unchanged
- final option recorded / required
- attachment marker details
- audit event type defaults to the resulting status
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from approval_engines.transitions import apply_transition, require_reason
from approval_kernel.domain.records import FinalOption
from approval_kernel.domain.workflow import WorkflowAction, WorkflowType
from approval_kernel.exceptions import (
    ActorFieldAlreadySetError,
    InvalidTransitionError,
    ValidationError,
)
from tests.sample_org import (
    CREATOR,
    DG,
    DIRECTEUR_OPS,
    MAGASINIER,
    RESPONSABLE_OPS,
)

NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
EDB = WorkflowType.REQUISITION


def _rule(definition, rule_id, status):
    for rule in definition.rules_from(status):
        if rule.rule_id == rule_id:
            return rule
    raise AssertionError(f"no rule {rule_id} from {status}")


class TestStamping:

    def test_approval_stamps_actor(self, requisition, actor, make_snapshot):
        record = make_snapshot(EDB, "SUBMITTED")
        rule = _rule(requisition, "department_head_approval", "SUBMITTED")
        outcome = apply_transition(
            rule, record, actor(RESPONSABLE_OPS), rule.next_status, {}, NOW,
        )
        assert outcome.record.status == "APPROVED_RESPONSABLE"
        assert outcome.record.stamp("approver_id") == RESPONSABLE_OPS
        assert outcome.event_type == "APPROVED_RESPONSABLE"
        assert outcome.details["from_status"] == "SUBMITTED"
        assert outcome.details["to_status"] == "APPROVED_RESPONSABLE"
        assert outcome.details["rule"] == "department_head_approval"

    def test_stamp_never_overwritten(self, requisition, actor, make_snapshot):
        record = make_snapshot(EDB, "SUPPLIER_CHOSEN", actor_stamps={"final_approver_id": 77})
        record = record.with_changes(
            final_option=FinalOption("s-1", chosen_by_id=MAGASINIER, chosen_at=NOW),
        )
        rule = _rule(requisition, "final_approval", "SUPPLIER_CHOSEN")
        with pytest.raises(ActorFieldAlreadySetError) as exc_info:
            apply_transition(rule, record, actor(DG), rule.next_status, {}, NOW)
        assert exc_info.value.field_name == "final_approver_id"
        assert exc_info.value.existing_actor_id == 77
        assert isinstance(exc_info.value, InvalidTransitionError)

    def test_input_snapshot_unchanged(self, requisition, actor, make_snapshot):
        record = make_snapshot(EDB, "SUBMITTED")
        rule = _rule(requisition, "department_head_approval", "SUBMITTED")
        apply_transition(rule, record, actor(RESPONSABLE_OPS), rule.next_status, {}, NOW)
        assert record.status == "SUBMITTED"
        assert dict(record.actor_stamps) == {}


class TestRejection:

    @pytest.mark.parametrize("payload", [{}, {"reason": ""}, {"reason": "   "}, {"reason": 12}])
    def test_reason_required(self, requisition, actor, make_snapshot, payload):
        rule = _rule(requisition, "department_head_rejection", "SUBMITTED")
        with pytest.raises(ValidationError) as exc_info:
            apply_transition(
                rule, make_snapshot(EDB, "SUBMITTED"), actor(RESPONSABLE_OPS),
                rule.next_status, payload, NOW,
            )
        assert exc_info.value.field_name == "reason"

    def test_reason_stored_and_stripped(self, requisition, actor, make_snapshot):
        rule = _rule(requisition, "department_head_rejection", "SUBMITTED")
        outcome = apply_transition(
            rule, make_snapshot(EDB, "SUBMITTED"), actor(RESPONSABLE_OPS),
            rule.next_status, {"reason": "  Over budget "}, NOW,
        )
        assert outcome.record.status == "REJECTED"
        assert outcome.record.rejection_reason == "Over budget"
        assert outcome.record.stamp("rejected_by_id") == RESPONSABLE_OPS
        assert outcome.details["reason"] == "Over budget"

    def test_require_reason_helper(self):
        assert require_reason({"reason": " x "}) == "x"


class TestEscalation:

    def test_sets_flag_without_status_change(self, requisition, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_RESPONSABLE")
        rule = _rule(requisition, "escalate", "APPROVED_RESPONSABLE")
        outcome = apply_transition(rule, record, actor(DIRECTEUR_OPS), None, {}, NOW)
        assert outcome.record.is_escalated
        assert outcome.record.status == "APPROVED_RESPONSABLE"
        assert outcome.event_type == "ESCALATED"
        assert "to_status" not in outcome.details

    def test_second_escalation_invalid(self, requisition, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_RESPONSABLE", is_escalated=True)
        rule = _rule(requisition, "escalate", "APPROVED_RESPONSABLE")
        with pytest.raises(InvalidTransitionError):
            apply_transition(rule, record, actor(DIRECTEUR_OPS), None, {}, NOW)


class TestFinalOption:

    def test_choice_recorded(self, requisition, actor, make_snapshot):
        rule = _rule(requisition, "choose_supplier", "APPROVED_DIRECTEUR")
        outcome = apply_transition(
            rule, make_snapshot(EDB, "APPROVED_DIRECTEUR"), actor(MAGASINIER),
            rule.next_status, {"option_id": " supplier-b ", "amount": "1250.50", "label": "B"},
            NOW,
        )
        option = outcome.final_option
        assert option.option_id == "supplier-b"
        assert option.amount == Decimal("1250.50")
        assert option.chosen_by_id == MAGASINIER
        assert option.chosen_at == NOW
        assert outcome.details["amount"] == "1250.50"
        assert outcome.record.status == "SUPPLIER_CHOSEN"

    def test_option_id_required(self, requisition, actor, make_snapshot):
        rule = _rule(requisition, "choose_supplier", "APPROVED_DIRECTEUR")
        with pytest.raises(ValidationError):
            apply_transition(
                rule, make_snapshot(EDB, "APPROVED_DIRECTEUR"), actor(MAGASINIER),
                rule.next_status, {"option_id": "  "}, NOW,
            )

    def test_bad_amount_rejected(self, requisition, actor, make_snapshot):
        rule = _rule(requisition, "choose_supplier", "APPROVED_DIRECTEUR")
        with pytest.raises(ValidationError) as exc_info:
            apply_transition(
                rule, make_snapshot(EDB, "APPROVED_DIRECTEUR"), actor(MAGASINIER),
                rule.next_status, {"option_id": "s", "amount": "lots"}, NOW,
            )
        assert exc_info.value.field_name == "amount"

    def test_finalize_requires_choice(self, requisition, actor, make_snapshot):
        rule = _rule(requisition, "final_approval", "SUPPLIER_CHOSEN")
        with pytest.raises(InvalidTransitionError):
            apply_transition(
                rule, make_snapshot(EDB, "SUPPLIER_CHOSEN"), actor(DG), rule.next_status, {}, NOW,
            )


class TestAttachment:

    def test_marker_with_name(self, requisition, actor, make_snapshot):
        rule = _rule(requisition, "creator_attachment", "SUBMITTED")
        outcome = apply_transition(
            rule, make_snapshot(EDB, "SUBMITTED"), actor(CREATOR), None,
            {"attachment_name": "quote.pdf", "attachment_id": 42}, NOW,
        )
        assert outcome.event_type == "ATTACHMENT_ADDED"
        assert outcome.record.status == "SUBMITTED"
        assert outcome.details["attachment_name"] == "quote.pdf"
        assert outcome.details["attachment_id"] == "42"
        assert outcome.details["action"] == WorkflowAction.RECORD_ATTACHMENT.value

    def test_name_required(self, requisition, actor, make_snapshot):
        rule = _rule(requisition, "creator_attachment", "SUBMITTED")
        with pytest.raises(ValidationError):
            apply_transition(rule, make_snapshot(EDB, "SUBMITTED"), actor(CREATOR), None, {}, NOW)
