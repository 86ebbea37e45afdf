# orgstructure/app/metrics.py
from prometheus_client import Counter

# === Core metrics (definitions ONLY here) ===
org_changes_total = Counter(
    "org_changes_total", "Change-log entries written", ["entity_type", "action"]
)

request_transitions_total = Counter(
    "request_transitions_total", "Change-request status transitions", ["from_status", "to_status"]
)

illegal_transitions_total = Counter(
    "illegal_transitions_total", "Rejected change-request status transitions"
)

positions_cascaded_total = Counter(
    "positions_cascaded_total", "Positions deactivated by a department deactivation"
)

assignments_closed_total = Counter(
    "assignments_closed_total", "Open position assignments closed by a position deactivation"
)

approval_decisions_total = Counter(
    "approval_decisions_total", "Approval decisions recorded", ["decision"]
)

def init_metrics_zero():
    # create label combos at 0 so dashboards never see "no data"
    from app.models import ApprovalDecision
    for d in ApprovalDecision:
        approval_decisions_total.labels(decision=d.value).inc(0)
    illegal_transitions_total.inc(0)
    positions_cascaded_total.inc(0)
    assignments_closed_total.inc(0)
