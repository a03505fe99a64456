"""
Tests for the pure authorization evaluator.

Tests cover:
- role x status x department cross-product for each workflow
- override precedence (override roles win over department scoping)
- allow_override: false steps stay closed to override roles
- category guards bind everyone, including override roles
- department-head director roles reach their department from anywhere
- terminal statuses and missing rules are invalid transitions
- allowed_actions enumeration
- closed-world property (hypothesis)
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from approval_engines.authorization import (
    allowed_actions,
    can_perform,
    department_matches,
    evaluate,
)
from approval_kernel.domain.records import Actor, DenialKind
from approval_kernel.domain.workflow import WorkflowAction, WorkflowType
from tests.sample_org import (
    ADMIN,
    ADMIN_RESPONSABLE_COM,
    CAISSIER,
    COLLEAGUE,
    CREATOR,
    DAF,
    DCM,
    DG,
    DIRECTEUR_COM,
    DIRECTEUR_OPS,
    DOG,
    DRH,
    IT_ADMIN,
    MAGASINIER,
    RESPONSABLE_COM,
    RESPONSABLE_OPS,
    RH_AGENT,
)

A = WorkflowAction
EDB = WorkflowType.REQUISITION
BDC = WorkflowType.CASH_VOUCHER
ODM = WorkflowType.MISSION_ORDER


# =========================================================================
# Requisition
# =========================================================================


class TestRequisitionApproveAtSubmitted:
    """Who may approve a SUBMITTED requisition of department OPS."""

    @pytest.mark.parametrize(
        "actor_id, expected_next",
        [
            (RESPONSABLE_OPS, "APPROVED_RESPONSABLE"),
            (DIRECTEUR_OPS, "APPROVED_DIRECTEUR"),
            (DOG, "APPROVED_DIRECTEUR"),
            (ADMIN, "APPROVED_RESPONSABLE"),
            (DG, "APPROVED_RESPONSABLE"),
            (ADMIN_RESPONSABLE_COM, "APPROVED_RESPONSABLE"),
        ],
    )
    def test_allowed(self, table, actor, make_snapshot, actor_id, expected_next):
        verdict = can_perform(table, actor(actor_id), make_snapshot(EDB, "SUBMITTED"), A.APPROVE)
        assert verdict.allowed
        assert verdict.next_status == expected_next

    @pytest.mark.parametrize(
        "actor_id",
        [CREATOR, COLLEAGUE, RESPONSABLE_COM, DIRECTEUR_COM, DCM, DAF, DRH,
         IT_ADMIN, MAGASINIER, CAISSIER, RH_AGENT],
    )
    def test_denied(self, table, actor, make_snapshot, actor_id):
        verdict = can_perform(table, actor(actor_id), make_snapshot(EDB, "SUBMITTED"), A.APPROVE)
        assert not verdict.allowed
        assert verdict.denial is DenialKind.UNAUTHORIZED
        assert verdict.reason

    def test_other_department_head_is_refused_with_department_reason(
        self, table, actor, make_snapshot,
    ):
        verdict = can_perform(
            table, actor(RESPONSABLE_COM), make_snapshot(EDB, "SUBMITTED"), A.APPROVE,
        )
        assert "department" in verdict.reason

    def test_first_matching_rule_wins(self, table, actor, make_snapshot):
        verdict = can_perform(
            table, actor(RESPONSABLE_OPS), make_snapshot(EDB, "SUBMITTED"), A.APPROVE,
        )
        assert verdict.rule.rule_id == "department_head_approval"


class TestDepartmentHeadRoles:

    def test_director_role_heads_its_department_from_anywhere(self, table, make_snapshot):
        commercial_director_at_hq = Actor(50, {"DCM"}, "HQ")
        verdict = can_perform(
            table,
            commercial_director_at_hq,
            make_snapshot(EDB, "APPROVED_RESPONSABLE", department_id="COM"),
            A.APPROVE,
        )
        assert verdict.allowed

    def test_director_role_does_not_reach_other_departments(self, table, actor, make_snapshot):
        verdict = can_perform(
            table, actor(DOG), make_snapshot(EDB, "SUBMITTED", department_id="COM"), A.APPROVE,
        )
        assert verdict.denial is DenialKind.UNAUTHORIZED

    def test_department_matches_needs_record_department(self, requisition, actor, make_snapshot):
        record = make_snapshot(EDB, "SUBMITTED", department_id=None)
        assert not department_matches(requisition, actor(DOG), record, frozenset({"DOG"}))


class TestRequisitionItBranch:

    def test_director_approval_redirects_it_category(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_RESPONSABLE", category="  it Equipment")
        verdict = can_perform(table, actor(DIRECTEUR_OPS), record, A.APPROVE)
        assert verdict.allowed
        assert verdict.next_status == "AWAITING_IT_APPROVAL"

    def test_director_approval_keeps_chain_for_other_categories(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_RESPONSABLE", category="Office supplies")
        verdict = can_perform(table, actor(DIRECTEUR_OPS), record, A.APPROVE)
        assert verdict.next_status == "APPROVED_DIRECTEUR"

    def test_it_admin_approves_it_category(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "AWAITING_IT_APPROVAL", category="Software and licences")
        verdict = can_perform(table, actor(IT_ADMIN), record, A.APPROVE)
        assert verdict.allowed
        assert verdict.next_status == "IT_APPROVED"

    @pytest.mark.parametrize("actor_id", [ADMIN, DG, DIRECTEUR_OPS])
    def test_it_step_closed_to_override_roles(self, table, actor, make_snapshot, actor_id):
        record = make_snapshot(EDB, "AWAITING_IT_APPROVAL", category="IT equipment")
        verdict = can_perform(table, actor(actor_id), record, A.APPROVE)
        assert verdict.denial is DenialKind.UNAUTHORIZED

    def test_it_category_cannot_skip_it_step(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_DIRECTEUR", category="IT equipment")
        verdict = can_perform(table, actor(MAGASINIER), record, A.CHOOSE_FINAL_OPTION)
        assert verdict.denial is DenialKind.UNAUTHORIZED
        assert "must first pass" in verdict.reason

    def test_category_guard_binds_override_roles(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_DIRECTEUR", category="IT equipment")
        verdict = can_perform(table, actor(ADMIN), record, A.CHOOSE_FINAL_OPTION)
        assert not verdict.allowed

    def test_storekeeper_chooses_supplier_for_non_it(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_DIRECTEUR", category="Furniture")
        verdict = can_perform(table, actor(MAGASINIER), record, A.CHOOSE_FINAL_OPTION)
        assert verdict.allowed
        assert verdict.next_status == "SUPPLIER_CHOSEN"

    def test_it_service_chooses_supplier_for_it(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "IT_APPROVED", category="IT equipment")
        verdict = can_perform(table, actor(IT_ADMIN), record, A.CHOOSE_FINAL_OPTION)
        assert verdict.allowed
        assert verdict.next_status == "SUPPLIER_CHOSEN"

    @pytest.mark.parametrize("actor_id", [MAGASINIER, DG, ADMIN])
    def test_supplier_choice_after_it_reserved_to_it_service(
        self, table, actor, make_snapshot, actor_id,
    ):
        record = make_snapshot(EDB, "IT_APPROVED", category="IT equipment")
        verdict = can_perform(table, actor(actor_id), record, A.CHOOSE_FINAL_OPTION)
        assert verdict.denial is DenialKind.UNAUTHORIZED


class TestRequisitionFinalSteps:

    def test_only_general_director_finalizes(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "SUPPLIER_CHOSEN")
        assert can_perform(table, actor(DG), record, A.FINALIZE).allowed
        assert not can_perform(table, actor(DIRECTEUR_OPS), record, A.FINALIZE).allowed
        assert not can_perform(table, actor(MAGASINIER), record, A.FINALIZE).allowed

    def test_storekeeper_completes(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "FINAL_APPROVAL")
        verdict = can_perform(table, actor(MAGASINIER), record, A.MARK_COMPLETE)
        assert verdict.next_status == "COMPLETED"


class TestEscalation:

    def test_director_of_department_escalates(self, table, actor, make_snapshot):
        verdict = can_perform(
            table, actor(DIRECTEUR_OPS), make_snapshot(EDB, "APPROVED_RESPONSABLE"), A.ESCALATE,
        )
        assert verdict.allowed
        assert verdict.next_status is None

    @pytest.mark.parametrize("actor_id", [DIRECTEUR_COM, DG, ADMIN, RESPONSABLE_OPS])
    def test_others_cannot_escalate(self, table, actor, make_snapshot, actor_id):
        verdict = can_perform(
            table, actor(actor_id), make_snapshot(EDB, "APPROVED_RESPONSABLE"), A.ESCALATE,
        )
        assert verdict.denial is DenialKind.UNAUTHORIZED

    def test_escalation_outside_its_status_is_invalid(self, table, actor, make_snapshot):
        verdict = can_perform(
            table, actor(DIRECTEUR_OPS), make_snapshot(EDB, "SUBMITTED"), A.ESCALATE,
        )
        assert verdict.denial is DenialKind.INVALID_TRANSITION


class TestRejection:

    def test_department_head_rejects_submitted(self, table, actor, make_snapshot):
        verdict = can_perform(
            table, actor(RESPONSABLE_OPS), make_snapshot(EDB, "SUBMITTED"), A.REJECT,
        )
        assert verdict.allowed
        assert verdict.next_status == "REJECTED"

    def test_department_head_cannot_reject_after_own_step(self, table, actor, make_snapshot):
        verdict = can_perform(
            table, actor(RESPONSABLE_OPS), make_snapshot(EDB, "APPROVED_RESPONSABLE"), A.REJECT,
        )
        assert verdict.denial is DenialKind.UNAUTHORIZED

    @pytest.mark.parametrize("status", ["SUPPLIER_CHOSEN", "FINAL_APPROVAL", "IT_APPROVED"])
    def test_late_statuses_rejectable_by_override_roles_only(
        self, table, actor, make_snapshot, status,
    ):
        record = make_snapshot(EDB, status)
        assert can_perform(table, actor(ADMIN), record, A.REJECT).allowed
        assert can_perform(table, actor(DG), record, A.REJECT).allowed
        assert not can_perform(table, actor(DIRECTEUR_OPS), record, A.REJECT).allowed
        assert not can_perform(table, actor(MAGASINIER), record, A.REJECT).allowed


class TestDeletion:

    def test_creator_deletes_while_submitted(self, table, actor, make_snapshot):
        verdict = can_perform(table, actor(CREATOR), make_snapshot(EDB, "SUBMITTED"), A.DELETE)
        assert verdict.allowed
        assert verdict.rule.rule_id == "creator_deletion"

    def test_colleague_cannot_delete(self, table, actor, make_snapshot):
        verdict = can_perform(table, actor(COLLEAGUE), make_snapshot(EDB, "SUBMITTED"), A.DELETE)
        assert verdict.denial is DenialKind.UNAUTHORIZED

    def test_creator_cannot_delete_once_approved(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_RESPONSABLE")
        assert not can_perform(table, actor(CREATOR), record, A.DELETE).allowed

    def test_admin_deletes_any_open_record(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "FINAL_APPROVAL")
        verdict = can_perform(table, actor(ADMIN), record, A.DELETE)
        assert verdict.allowed
        assert verdict.rule.rule_id == "admin_deletion"

    def test_general_director_is_not_admin_for_deletion(self, table, actor, make_snapshot):
        record = make_snapshot(EDB, "APPROVED_RESPONSABLE")
        assert not can_perform(table, actor(DG), record, A.DELETE).allowed


class TestTerminalAndUnknown:

    @pytest.mark.parametrize("status", ["COMPLETED", "REJECTED", "DELETED"])
    @pytest.mark.parametrize("action", list(WorkflowAction))
    def test_terminal_statuses_admit_nothing(self, table, actor, make_snapshot, status, action):
        verdict = can_perform(table, actor(ADMIN), make_snapshot(EDB, status), action)
        assert verdict.denial is DenialKind.INVALID_TRANSITION

    def test_action_without_rule_is_invalid(self, table, actor, make_snapshot):
        verdict = can_perform(table, actor(DG), make_snapshot(EDB, "SUBMITTED"), A.FINALIZE)
        assert verdict.denial is DenialKind.INVALID_TRANSITION

    def test_unknown_action_is_invalid(self, requisition, actor, make_snapshot):
        verdict = evaluate(requisition, actor(ADMIN), make_snapshot(EDB, "SUBMITTED"), "teleport")
        assert verdict.denial is DenialKind.INVALID_TRANSITION


# =========================================================================
# Cash voucher
# =========================================================================


class TestCashVoucher:

    def test_finance_director_approves_any_department(self, table, actor, make_snapshot):
        record = make_snapshot(BDC, "APPROVED_DIRECTEUR", department_id="COM")
        verdict = can_perform(table, actor(DAF), record, A.APPROVE)
        assert verdict.allowed
        assert verdict.next_status == "APPROVED_DAF"

    @pytest.mark.parametrize("actor_id", [ADMIN, DG, DIRECTEUR_OPS])
    def test_finance_step_closed_to_others(self, table, actor, make_snapshot, actor_id):
        record = make_snapshot(BDC, "APPROVED_DIRECTEUR")
        assert not can_perform(table, actor(actor_id), record, A.APPROVE).allowed

    def test_cashier_prints(self, table, actor, make_snapshot):
        verdict = can_perform(
            table, actor(CAISSIER), make_snapshot(BDC, "APPROVED_DAF"), A.MARK_COMPLETE,
        )
        assert verdict.next_status == "PRINTED"

    def test_finance_director_rejects_before_own_approval_only(self, table, actor, make_snapshot):
        assert can_perform(
            table, actor(DAF), make_snapshot(BDC, "APPROVED_DIRECTEUR"), A.REJECT,
        ).allowed
        assert not can_perform(
            table, actor(DAF), make_snapshot(BDC, "APPROVED_DAF"), A.REJECT,
        ).allowed
        assert can_perform(
            table, actor(ADMIN), make_snapshot(BDC, "APPROVED_DAF"), A.REJECT,
        ).allowed


# =========================================================================
# Mission order
# =========================================================================


class TestMissionOrder:

    @pytest.mark.parametrize(
        "status, allowed_id, refused_id, expected_next",
        [
            ("SUBMITTED", DIRECTEUR_OPS, DIRECTEUR_COM, "AWAITING_DRH_APPROVAL"),
            ("AWAITING_DRH_APPROVAL", DRH, RH_AGENT, "RH_PROCESSING"),
            ("RH_PROCESSING", RH_AGENT, DRH, "AWAITING_DRH_VALIDATION"),
            ("AWAITING_DRH_VALIDATION", DRH, RH_AGENT, "AWAITING_DOG_APPROVAL"),
            ("AWAITING_DOG_APPROVAL", DOG, DRH, "READY_FOR_PRINT"),
        ],
    )
    def test_chain_steps(
        self, table, actor, make_snapshot, status, allowed_id, refused_id, expected_next,
    ):
        record = make_snapshot(ODM, status)
        verdict = can_perform(table, actor(allowed_id), record, A.APPROVE)
        assert verdict.next_status == expected_next
        assert not can_perform(table, actor(refused_id), record, A.APPROVE).allowed

    @pytest.mark.parametrize("actor_id", [RH_AGENT, DRH])
    def test_hr_prints(self, table, actor, make_snapshot, actor_id):
        verdict = can_perform(
            table, actor(actor_id), make_snapshot(ODM, "READY_FOR_PRINT"), A.MARK_COMPLETE,
        )
        assert verdict.next_status == "COMPLETED"

    def test_ready_for_print_rejectable_by_override_only(self, table, actor, make_snapshot):
        record = make_snapshot(ODM, "READY_FOR_PRINT")
        assert not can_perform(table, actor(DRH), record, A.REJECT).allowed
        assert can_perform(table, actor(DG), record, A.REJECT).allowed


# =========================================================================
# allowed_actions
# =========================================================================


class TestAllowedActions:

    def test_creator_of_draft(self, table, actor, make_snapshot):
        actions = allowed_actions(table, actor(CREATOR), make_snapshot(EDB, "DRAFT"))
        assert actions == [A.SUBMIT, A.DELETE, A.RECORD_ATTACHMENT]

    def test_director_after_department_head(self, table, actor, make_snapshot):
        actions = allowed_actions(
            table, actor(DIRECTEUR_OPS), make_snapshot(EDB, "APPROVED_RESPONSABLE"),
        )
        assert actions == [A.APPROVE, A.REJECT, A.ESCALATE]

    def test_outsider_gets_nothing(self, table, actor, make_snapshot):
        assert allowed_actions(table, actor(CAISSIER), make_snapshot(EDB, "SUBMITTED")) == []

    def test_terminal_record_gets_nothing(self, table, actor, make_snapshot):
        assert allowed_actions(table, actor(ADMIN), make_snapshot(BDC, "PRINTED")) == []


# =========================================================================
# Tracing
# =========================================================================


def test_evaluation_is_traced(table, actor, make_snapshot, captured_logs):
    can_perform(table, actor(RESPONSABLE_OPS), make_snapshot(EDB, "SUBMITTED"), A.APPROVE)
    traces = [r for r in captured_logs() if r["message"] == "APPROVAL_ENGINE_TRACE"]
    assert traces
    assert traces[-1]["engine_name"] == "authorization"
    assert len(traces[-1]["input_fingerprint"]) == 16


# =========================================================================
# Closed world (property)
# =========================================================================

ROLES = ["EMPLOYE", "RESPONSABLE", "DIRECTEUR", "DAF", "DRH", "DOG", "DCM", "IT_ADMIN",
         "MAGASINIER", "CAISSIER", "RH", "ADMIN", "DIRECTEUR_GENERAL", "AUDITOR"]
DEPARTMENTS = ["OPS", "COM", "FIN", "RH", "IT", None]


@settings(max_examples=300, deadline=None)
@given(
    workflow_type=st.sampled_from(list(WorkflowType)),
    roles=st.frozensets(st.sampled_from(ROLES), max_size=3),
    actor_department=st.sampled_from(DEPARTMENTS),
    record_department=st.sampled_from(DEPARTMENTS[:-1]),
    action=st.sampled_from(list(WorkflowAction)),
    category=st.sampled_from([None, "IT equipment", "Furniture", "logiciels et licences"]),
    is_creator=st.booleans(),
    data=st.data(),
)
def test_closed_world(
    table, workflow_type, roles, actor_department, record_department, action,
    category, is_creator, data,
):
    """Allowed only through an explicit rule; never out of a terminal status."""
    definition = table.definition(workflow_type)
    status = data.draw(st.sampled_from(definition.statuses))
    actor = Actor(99, roles, actor_department)
    record = _snapshot(workflow_type, status, record_department, 99 if is_creator else 1, category)

    verdict = can_perform(table, actor, record, action)

    if definition.is_terminal(status):
        assert verdict.denial is DenialKind.INVALID_TRANSITION
    if verdict.allowed:
        assert verdict.rule in definition.candidates(status, action)
        if verdict.next_status is not None:
            assert verdict.next_status in definition.statuses
    elif not definition.candidates(status, action):
        assert verdict.denial is DenialKind.INVALID_TRANSITION


def _snapshot(workflow_type, status, department_id, creator_id, category):
    from approval_kernel.domain.records import WorkflowRecord

    return WorkflowRecord(
        id=1,
        code="X-20240101-0001",
        workflow_type=workflow_type,
        status=status,
        department_id=department_id,
        creator_id=creator_id,
        category=category,
    )
