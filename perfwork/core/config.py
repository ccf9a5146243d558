import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Config(BaseModel):
    app_name: str = "Performance Workflow Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./performance.db")

    version: str = "1.0.0"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    request_id_header: str = "X-Request-ID"

    # Principal resolution (identity is established by the gateway in front of us)
    employee_id_header: str = "X-Employee-Id"
    user_name_header: str = "X-User-Name"
    roles_header: str = "X-User-Roles"
    permissions_header: str = "X-User-Permissions"

    # Roles/permissions that may act on any plan as supervisor or reviewer
    privileged_roles: List[str] = Field(
        default_factory=lambda: _env_list(
            "PRIVILEGED_ROLES",
            "HR,HR_MANAGER,HR_ADMIN,ADMIN,SUPERUSER,SYSTEM_ADMINISTRATOR,"
            "ADVANCE_USER_1,ADVANCE_USER_2",
        )
    )
    privileged_permissions: List[str] = Field(
        default_factory=lambda: _env_list(
            "PRIVILEGED_PERMISSIONS", "hr.full_access,hr.view_all_performance"
        )
    )

    # Workflow
    week_start: str = os.getenv("WEEK_START", "sunday").lower()
    workflow_write_retries: int = int(os.getenv("WORKFLOW_WRITE_RETRIES", "3"))
    manager_position_keywords: List[str] = Field(
        default_factory=lambda: _env_list(
            "MANAGER_POSITION_KEYWORDS", "manager,supervisor,director,head"
        )
    )


settings = Config()

# --- Startup Validation ---
_logger = logging.getLogger(__name__)
if settings.week_start not in ("sunday", "monday"):
    raise RuntimeError(f"FATAL: WEEK_START must be 'sunday' or 'monday', got '{settings.week_start}'.")
if settings.environment not in ("development", "testing"):
    if not settings.privileged_roles:
        raise RuntimeError(
            "FATAL: PRIVILEGED_ROLES must list at least one role for non-development environments."
        )
elif not settings.privileged_roles:
    _logger.warning("⚠ No privileged roles configured, HR override is disabled.")
