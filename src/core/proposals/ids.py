import time
import uuid


def new_proposal_id(now_ms=None):
    millis = int(time.time() * 1000) if now_ms is None else int(now_ms)
    return f"proposal-{millis}-{uuid.uuid4().hex[:8]}"


def new_operation_id():
    return f"pop_{uuid.uuid4().hex[:12]}"


def new_notification_id():
    return f"ntf_{uuid.uuid4().hex[:12]}"
