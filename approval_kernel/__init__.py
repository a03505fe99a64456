"""
Approval Kernel

The authorization-and-transition core shared by the requisition (EDB),
cash voucher (BDC) and mission order (ODM) workflows:
- Declarative transition tables, one per workflow type
- Closed-world authorization (absence of a rule means denial)
- Atomic status change plus audit entry, optimistic per-record locking
- Append-only, hash-chained audit trail
"""

__version__ = "0.1.0"
