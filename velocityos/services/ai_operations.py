"""
Autonomous AI operations dispatched through the gateway and executed with Gemini.
"""
import json
import logging
import secrets
import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import case, or_, update

from velocityos.errors import ApiError
from velocityos.extensions import db
from velocityos.models.agent import AIOperation, OP_QUEUED, OP_RUNNING, OP_SUCCEEDED, OP_FAILED
from velocityos.models.org import Org
from velocityos.services import credits, gemini
from velocityos.services.google_workspace import get_fresh_tokens
from velocityos.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    EMAIL_ANALYSIS = "email_analysis"
    EMAIL_RESPONSE = "email_response"
    CALENDAR_SCHEDULING = "calendar_scheduling"
    DOCUMENT_CREATION = "document_creation"
    CUSTOMER_CATEGORIZATION = "customer_categorization"
    DECISION_MAKING = "decision_making"
    PREDICTIVE_ANALYSIS = "predictive_analysis"


PRIORITIES = ("low", "medium", "high", "critical")
OPERATION_TYPES = tuple(t.value for t in OperationType)

# One AI credit unit per executed operation
AI_CREDIT_UNIT = 1_000
DEFAULT_CONFIDENCE = 0.85

SYSTEM_PROMPT = (
    "You are the AI engine of VelocityOS, a business operating system. "
    "You analyse business context (email, calendar, documents, contacts and customer data) "
    "and decide on concrete next actions. Be professional, prioritise customer satisfaction "
    "and base every decision on the data provided. "
    'Always answer with one JSON object containing "confidence" (0 to 1), '
    '"actionsTaken" (list of short snake_case strings) and the operation-specific fields requested.'
)

_TASKS: Dict[str, str] = {
    OperationType.EMAIL_ANALYSIS.value: (
        'Analyse the email. Return "analysis" with sentiment, priority, category, '
        "requiresResponse and suggestedActions."
    ),
    OperationType.EMAIL_RESPONSE.value: (
        'Draft a reply to the email. Return "response" with subject and body.'
    ),
    OperationType.CALENDAR_SCHEDULING.value: (
        'Propose a meeting. Return "event" with title, proposedStart (ISO 8601), durationMinutes and participants.'
    ),
    OperationType.DOCUMENT_CREATION.value: (
        'Write the requested document. Return "document" with title, type and content.'
    ),
    OperationType.CUSTOMER_CATEGORIZATION.value: (
        'Categorise the customer. Return "categorization" with segment, priority, lifecycleStage and engagementScore (0 to 100).'
    ),
    OperationType.DECISION_MAKING.value: (
        'Make the business decision. Return "decision" with recommendation, reasoning and confidenceLevel.'
    ),
    OperationType.PREDICTIVE_ANALYSIS.value: (
        'Forecast the requested metric. Return "prediction" with metric, forecast, trend and factors.'
    ),
}


class OperationError(Exception):
    pass


def new_operation_id() -> str:
    return f"ai_op_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def build_prompt(op_type: str, context: Dict[str, Any]) -> str:
    return (
        f"Operation: {op_type}\n"
        f"Task: {_TASKS[op_type]}\n"
        f"Context (JSON):\n{json.dumps(context, sort_keys=True, default=str)}"
    )


def create(
    *,
    org_id: int,
    user_id: Optional[int],
    op_type: str,
    context: Dict[str, Any],
    priority: str = "medium",
    requires_workspace_access: bool = False,
    scheduled_for: Optional[datetime] = None,
) -> AIOperation:
    if op_type not in OPERATION_TYPES:
        raise ApiError(400, "Bad Request", f"Unknown operationType: {op_type}")
    if priority not in PRIORITIES:
        raise ApiError(400, "Bad Request", f"Unknown priority: {priority}")
    op = AIOperation(
        operation_id=new_operation_id(),
        org_id=org_id,
        user_id=user_id,
        type=op_type,
        priority=priority,
        status=OP_QUEUED,
        requires_workspace_access=requires_workspace_access,
        context=context,
        scheduled_for=scheduled_for,
    )
    db.session.add(op)
    db.session.commit()
    return op


def _claim(op: AIOperation) -> bool:
    result = db.session.execute(
        update(AIOperation)
        .where(AIOperation.id == op.id, AIOperation.status == OP_QUEUED)
        .values(status=OP_RUNNING)
    )
    db.session.commit()
    return result.rowcount == 1


def _run(op: AIOperation) -> Dict[str, Any]:
    org = db.session.get(Org, op.org_id)
    if org is None or not org.ai_autonomous_mode:
        raise OperationError("AI Autonomous mode is not enabled for this organization")

    if op.requires_workspace_access:
        if op.user_id is None or get_fresh_tokens(op.user_id) is None:
            raise OperationError("No valid Google Workspace tokens available for AI operations")

    try:
        credits.consume(op.org_id, credits.AI_TOKENS, AI_CREDIT_UNIT)
    except ApiError as e:
        db.session.rollback()
        raise OperationError(e.message or "Insufficient credits") from e
    db.session.commit()

    try:
        return gemini.call_json(build_prompt(op.type, op.context or {}), system_instruction=SYSTEM_PROMPT)
    except Exception:
        credits.refund(op.org_id, credits.AI_TOKENS, AI_CREDIT_UNIT)
        db.session.commit()
        raise


def execute(op: AIOperation) -> AIOperation:
    """
    Run a queued operation. Failures are recorded on the row
    (status failed, error, confidence 0) and never raised.
    """
    if not _claim(op):
        db.session.refresh(op)
        return op

    try:
        payload = _run(op)
    except Exception as e:
        logger.warning("ai_operation_failed op=%s type=%s error=%s", op.operation_id, op.type, e)
        op.status = OP_FAILED
        op.error = str(e)[:500] or type(e).__name__
        op.confidence = 0.0
        op.actions_taken = []
    else:
        actions = payload.pop("actionsTaken", None)
        confidence = payload.pop("confidence", None)
        try:
            op.confidence = max(0.0, min(1.0, float(confidence)))
        except (TypeError, ValueError):
            op.confidence = DEFAULT_CONFIDENCE
        op.actions_taken = [str(a) for a in actions] if isinstance(actions, list) else []
        op.result = payload
        op.error = None
        op.status = OP_SUCCEEDED
        logger.info("ai_operation_succeeded op=%s type=%s", op.operation_id, op.type)

    op.executed_at = utcnow()
    db.session.commit()
    return op


def drain_due(limit: int = 25) -> int:
    """Execute due queued operations, most urgent first."""
    rank = case(
        {"critical": 0, "high": 1, "medium": 2, "low": 3},
        value=AIOperation.priority,
        else_=4,
    )
    due = db.session.execute(
        db.select(AIOperation)
        .where(
            AIOperation.status == OP_QUEUED,
            or_(AIOperation.scheduled_for.is_(None), AIOperation.scheduled_for <= utcnow()),
        )
        .order_by(rank, AIOperation.created_at.asc())
        .limit(limit)
    ).scalars().all()
    for op in due:
        execute(op)
    return len(due)


def requeue_running(org_id: int) -> int:
    result = db.session.execute(
        update(AIOperation)
        .where(AIOperation.org_id == org_id, AIOperation.status == OP_RUNNING)
        .values(status=OP_QUEUED)
    )
    return result.rowcount or 0
