"""Leave module — requests, approvals, balance ledger and team calendar."""

from leave_engine.leave.balance import BalanceLedger
from leave_engine.leave.workflow import LeaveRequestWorkflow

__all__ = ["BalanceLedger", "LeaveRequestWorkflow"]
