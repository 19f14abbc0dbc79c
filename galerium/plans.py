import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

CURRENCY = "BRL"
PRODUCT_NAME = "Galerium Assets"


@dataclass(frozen=True)
class Plan:
    id: str
    title: str
    price: float


PLANS: Dict[str, Plan] = {
    "monthly": Plan(id="monthly", title="Monthly Plan", price=29.90),
    "annual": Plan(id="annual", title="Annual Plan", price=299.90),
    "premium": Plan(id="premium", title="Premium Plan", price=49.90),
}


def get_plan(plan_type: Optional[str]) -> Optional[Plan]:
    if not plan_type:
        return None
    return PLANS.get(plan_type)


def period_days(plan_type: str) -> int:
    return 365 if plan_type == "annual" else 30


def plan_name(plan_type: str) -> str:
    plan = PLANS.get(plan_type)
    return plan.title if plan else f"Plan {plan_type}"


def build_external_reference(user_id: str, plan_type: str, *parts: str, now_ms: Optional[int] = None) -> str:
    """`{user_id}_{plan_type}[_{part}...]_{epoch_ms}`; the timestamp keeps references unique."""
    stamp = str(now_ms if now_ms is not None else int(time.time() * 1000))
    return "_".join([str(user_id), plan_type, *parts, stamp])


def parse_external_reference(reference: Optional[str]) -> Tuple[str, str]:
    """Return (user_id, plan_type) from an external reference.

    Raises ValueError when the reference does not carry both segments.
    """
    segments = (reference or "").split("_")
    if len(segments) < 2 or not segments[0] or not segments[1]:
        raise ValueError(f"malformed external reference: {reference!r}")
    return segments[0], segments[1]
