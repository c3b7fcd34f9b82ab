from fastapi import BackgroundTasks

from .db import SessionLocal
from .models import AuditLog


async def write_audit_log(
    action: str,
    target_type: str,
    admin_id: int | None = None,
    target_id: int | None = None,
    details: dict | None = None,
) -> bool:
    """
    Best effort: a failed audit write is printed and dropped, never raised.
    Uses its own session so it can run after the request session is closed.
    """
    try:
        async with SessionLocal() as db:
            db.add(
                AuditLog(
                    admin_id=admin_id,
                    action=action,
                    target_type=target_type,
                    target_id=target_id,
                    details=details,
                )
            )
            await db.commit()
        return True
    except Exception as e:
        print(f"[localnest] audit log write failed ({action}): {e}")
        return False


def record_admin_action(
    background_tasks: BackgroundTasks,
    action: str,
    target_type: str,
    admin_id: int | None = None,
    target_id: int | None = None,
    details: dict | None = None,
):
    # runs after the response has been sent
    background_tasks.add_task(
        write_audit_log,
        action,
        target_type,
        admin_id=admin_id,
        target_id=target_id,
        details=details,
    )
