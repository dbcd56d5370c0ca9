import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from meetinghub.auth.rules import Actor
from meetinghub.auth.utils import require_admin
from meetinghub.core.db import get_db
from meetinghub.scheduler.cleanup import trigger_cleanup
from meetinghub.schemas.meeting import JobTriggered, RoleAssignment
from meetinghub.services import identity_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


@router.post("/users/{user_id}/roles", status_code=status.HTTP_204_NO_CONTENT)
def assign_role(
    user_id: str,
    body: RoleAssignment,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    logger.info("Admin %s assigning role '%s' to user %s", admin.id, body.role, user_id)
    identity_service.assign_role(db, user_id, body.role)


@router.delete("/users/{user_id}/roles/{role_name}", status_code=status.HTTP_204_NO_CONTENT)
def remove_role(
    user_id: str,
    role_name: str,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    identity_service.remove_role(db, admin, user_id, role_name)


@router.post("/cleanup", response_model=JobTriggered, status_code=status.HTTP_202_ACCEPTED)
def run_cleanup(admin: Actor = Depends(require_admin)):
    logger.info("Admin %s triggered meeting cleanup", admin.id)
    return JobTriggered(job_id=trigger_cleanup())
