"""
Chatbot escalation detection

Decides whether a chatbot conversation needs a human. Checks run in a fixed
order and the first match wins:

1. urgent keyword         -> urgent
2. complaint keyword      -> high
3. request for a human    -> high
4. frustration keyword    -> high
5. VIP customer           -> high
6. low intent confidence  -> medium
7. repeated failures      -> medium

Keywords match as case-insensitive substrings.
"""

from typing import Iterable, Optional

CONFIDENCE_THRESHOLD = 0.5
FAILURE_COUNT_THRESHOLD = 3

URGENT_KEYWORDS = [
    "emergency",
    "urgent",
    "asap",
    "immediately",
    "right now",
    "flooding",
    "water damage",
    "burst pipe",
    "leak",
    "fire",
    "smoke",
    "mold",
    "health hazard",
    "dangerous",
    "safety",
]

COMPLAINT_KEYWORDS = [
    "refund",
    "money back",
    "charge back",
    "chargeback",
    "dispute",
    "sue",
    "lawsuit",
    "attorney",
    "lawyer",
    "legal action",
    "better business bureau",
    "bbb",
    "complaint",
    "file a complaint",
    "report you",
    "cancel service",
    "cancel my account",
]

HUMAN_REQUEST_KEYWORDS = [
    "speak to",
    "talk to",
    "connect me",
    "transfer me",
    "real person",
    "human",
    "agent",
    "representative",
    "manager",
    "supervisor",
    "someone",
    "actual person",
    "live person",
    "customer service",
    "customer support",
]

FRUSTRATION_KEYWORDS = [
    "terrible",
    "awful",
    "horrible",
    "worst",
    "useless",
    "incompetent",
    "angry",
    "furious",
    "mad",
    "upset",
    "disappointed",
    "frustrated",
    "terrible service",
    "poor service",
    "bad service",
    "unacceptable",
    "ridiculous",
    "disgusting",
    "appalling",
    "pathetic",
    "waste of time",
    "waste of money",
]


def _find_keyword(message: str, keywords: list[str]) -> Optional[str]:
    return next((k for k in keywords if k in message), None)


def _result(trigger, priority, reason, is_urgent=False, meta=None) -> dict:
    return {
        "should_escalate": trigger is not None,
        "trigger": trigger,
        "priority": priority,
        "reason": reason,
        "is_urgent": is_urgent,
        "meta": meta or {},
    }


def detect_escalation(
    message: str,
    confidence: float,
    failure_count: int = 0,
    customer_id: Optional[int] = None,
    vip_customer_ids: Iterable[int] = (),
) -> dict:
    lower = (message or "").lower()

    keyword = _find_keyword(lower, URGENT_KEYWORDS)
    if keyword:
        return _result("urgent_issue", "urgent", f"Urgent issue detected: {keyword}", True, {"keyword": keyword})

    keyword = _find_keyword(lower, COMPLAINT_KEYWORDS)
    if keyword:
        return _result(
            "customer_frustration",
            "high",
            f"Complaint/refund request: {keyword}",
            meta={"keyword": keyword, "type": "complaint"},
        )

    keyword = _find_keyword(lower, HUMAN_REQUEST_KEYWORDS)
    if keyword:
        return _result(
            "explicit_request", "high", f"Customer requested human support: {keyword}", meta={"keyword": keyword}
        )

    keyword = _find_keyword(lower, FRUSTRATION_KEYWORDS)
    if keyword:
        return _result(
            "customer_frustration",
            "high",
            f"Customer frustration detected: {keyword}",
            meta={"keyword": keyword},
        )

    if customer_id is not None and customer_id in set(vip_customer_ids):
        return _result(
            "vip_customer", "high", "VIP customer requires human assistance", meta={"customerId": customer_id}
        )

    if confidence < CONFIDENCE_THRESHOLD:
        return _result(
            "low_confidence",
            "medium",
            f"Low confidence score: {round(confidence * 100)}%",
            meta={"confidence": confidence},
        )

    if failure_count >= FAILURE_COUNT_THRESHOLD:
        return _result(
            "repeated_failure",
            "medium",
            f"{failure_count} consecutive failed intent detections",
            meta={"failureCount": failure_count},
        )

    return _result(None, "low", "")
