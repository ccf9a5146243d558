from perfwork.services.base import BaseService
from perfwork.models.audit_log import AuditLog
from typing import Optional

class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        actor_id: Optional[int],
        actor_role: Optional[str],
        details: dict,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ):
        """
        Create an audit log entry in the caller's transaction.
        Strictly append-only. The entry is written inside a SAVEPOINT, so a
        failed insert is rolled back on its own, logged and swallowed, and the
        workflow action it describes still commits.
        """
        try:
            # Ensure serialization of nested Pydantic models in details/states
            def sanitize(obj):
                if hasattr(obj, "model_dump"):
                    return obj.model_dump(mode="json")
                if hasattr(obj, "isoformat"):
                    return obj.isoformat()
                if hasattr(obj, "value") and isinstance(obj.value, str):
                    return obj.value
                if isinstance(obj, dict):
                    return {k: sanitize(v) for k, v in obj.items()}
                if isinstance(obj, list):
                    return [sanitize(i) for i in obj]
                return obj

            db_log = AuditLog(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                actor_role=actor_role,
                details=sanitize(details),
                before_state=sanitize(before_state),
                after_state=sanitize(after_state)
            )
            # No commit here: the savepoint is released into the workflow action's transaction
            with self.db.begin_nested():
                self.db.add(db_log)
            return db_log
        except Exception as e:
            self.log_error(f"FAILED TO AUDIT LOG: {e}", exc_info=True)
            return None
