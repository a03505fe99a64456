#!/usr/bin/env python3
"""
Workflow demo: run each approval chain end to end and print the timelines.

Creates one requisition (IT category, so it takes the IT branch), one cash
voucher and one mission order, walks each of them to its completion status
with the actors a real organization would use, then prints every audit
timeline, the chain validation result and the in-app inbox of a few users.

Usage:
    python3 scripts/demo_workflow.py                 # In-memory SQLite
    python3 scripts/demo_workflow.py --db-url sqlite:///demo.db
    python3 scripts/demo_workflow.py --reject        # Also show a rejection
"""

import argparse
import logging
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite://"

W = 80


# =============================================================================
# Formatting
# =============================================================================

def hline(char: str = "=") -> str:
    return char * W


def banner(title: str) -> None:
    print()
    print(hline())
    print(f"  {title}")
    print(hline())


def field(name: str, value, indent: int = 4) -> None:
    print(f"{' ' * indent}{name}: {value}")


# =============================================================================
# Organization
# =============================================================================

def build_directory():
    from approval_kernel.domain.records import Actor
    from approval_services.identity import StaticDirectory

    return StaticDirectory([
        Actor(1, {"EMPLOYE"}, "OPS", "Awa Diallo"),
        Actor(2, {"RESPONSABLE"}, "OPS", "Moussa Traore"),
        Actor(3, {"DIRECTEUR"}, "OPS", "Fatou Ndiaye"),
        Actor(4, {"IT_ADMIN"}, "IT", "Ibrahima Sow"),
        Actor(5, {"MAGASINIER"}, "LOG", "Koffi Mensah"),
        Actor(6, {"DIRECTEUR_GENERAL"}, "DG", "Aminata Ba"),
        Actor(7, {"DAF"}, "FIN", "Cheikh Fall"),
        Actor(8, {"CAISSIER"}, "FIN", "Mariama Kane"),
        Actor(9, {"DRH"}, "RH", "Ousmane Sy"),
        Actor(10, {"RH"}, "RH", "Khady Gueye"),
        Actor(11, {"DOG"}, "OPS", "Lamine Cisse"),
        Actor(12, {"ADMIN"}, "SI", "Admin"),
    ])


# =============================================================================
# Scenarios
# =============================================================================

def run_requisition(engine) -> int:
    from approval_kernel.domain.workflow import WorkflowType

    record = engine.create(
        WorkflowType.REQUISITION, 1,
        title="Laptops for the field team",
        category="IT equipment",
        payload={"lines": [{"item": "Laptop", "quantity": 3}]},
        total_amount=Decimal("4500000"),
    )
    engine.approve(record.id, 2)
    engine.approve(record.id, 3)
    engine.approve(record.id, 4)
    engine.record_attachment(record.id, 5, "quote-supplier-a.pdf")
    engine.choose_final_option(record.id, 4, "supplier-a", amount=Decimal("4350000"))
    engine.finalize(record.id, 6)
    engine.mark_complete(record.id, 5)
    return record.id


def run_cash_voucher(engine) -> int:
    from approval_kernel.domain.workflow import WorkflowType

    record = engine.create(
        WorkflowType.CASH_VOUCHER, 1,
        title="Fuel advance",
        total_amount=Decimal("75000"),
    )
    engine.approve(record.id, 2)
    engine.approve(record.id, 3)
    engine.approve(record.id, 7)
    engine.mark_complete(record.id, 8)
    return record.id


def run_mission_order(engine) -> int:
    from approval_kernel.domain.workflow import WorkflowType

    record = engine.create(
        WorkflowType.MISSION_ORDER, 1,
        title="Site visit",
        payload={"destination": "Thies", "days": 3},
    )
    for actor_id in (3, 9, 10, 9, 11):
        engine.approve(record.id, actor_id)
    engine.mark_complete(record.id, 10)
    return record.id


def run_rejection(engine) -> int:
    from approval_kernel.domain.workflow import WorkflowType

    record = engine.create(WorkflowType.CASH_VOUCHER, 1, title="Team lunch")
    engine.reject(record.id, 2, "Not a business expense")
    return record.id


def print_timeline(engine, record_id: int) -> None:
    record = engine.get(record_id)
    banner(f"{record.code}  {record.title}")
    field("Status", record.status)
    field("Version", record.version)
    for name, actor_id in sorted(record.actor_stamps.items()):
        field(name, actor_id)
    if record.final_option is not None:
        field("Final option", f"{record.final_option.option_id} ({record.final_option.amount})")
    if record.rejection_reason:
        field("Rejection reason", record.rejection_reason)
    print()
    for entry in engine.timeline(record_id):
        extra = entry.details.get("attachment_name") or entry.details.get("reason") or ""
        print(
            f"    #{entry.seq:<4} {entry.occurred_at:%H:%M:%S}  actor={entry.actor_id:<3}"
            f" {entry.event_type:<24} {extra}"
        )
    print()
    field("Audit chain", "valid" if engine.validate_chain(record_id) else "BROKEN")


def print_inbox(database, user_id: int, name: str) -> None:
    from approval_kernel.selectors.notification_selector import NotificationSelector

    with database.session_scope() as session:
        items = NotificationSelector(session).inbox(user_id)
    print()
    print(f"  Inbox of {name} ({len(items)})")
    for item in items[:6]:
        print(f"    - [{item.entity_reference}] {item.message}")


# =============================================================================
# Main
# =============================================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run the three approval chains and print their timelines.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--db-url", type=str, default=DB_URL,
        help="Database URL (default: in-memory SQLite)",
    )
    parser.add_argument(
        "--reject", action="store_true",
        help="Also run a rejected cash voucher",
    )
    args = parser.parse_args()

    from approval_config.schema import EngineSettings
    from approval_kernel.db.engine import Database
    from approval_services.bootstrap import build_engine

    # Keep JSON logs off the console
    logging.disable(logging.CRITICAL)

    database = Database.from_url(args.db_url)
    directory = build_directory()
    engine = build_engine(
        directory=directory,
        settings=EngineSettings(database_url=args.db_url, log_level="WARNING"),
        database=database,
    )

    record_ids = [
        run_requisition(engine),
        run_cash_voucher(engine),
        run_mission_order(engine),
    ]
    if args.reject:
        record_ids.append(run_rejection(engine))

    for record_id in record_ids:
        print_timeline(engine, record_id)

    banner("NOTIFICATIONS")
    print_inbox(database, 1, "the requester")
    print_inbox(database, 6, "the general director")
    print_inbox(database, 10, "HR")
    print()

    engine.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
