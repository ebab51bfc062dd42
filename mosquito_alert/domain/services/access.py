"""
Access control for report operations.

One function decides who may do what; the FastAPI dependencies in
api/deps.py and the transition engine both go through it.
"""
from enum import Enum
from typing import Optional

from ...infrastructure import models
from ..errors import ForbiddenError, UnauthorizedError
from ..models import Role


class Action(str, Enum):
    CREATE_REPORT = "create_report"
    DELETE_REPORT = "delete_report"
    TRANSITION_STATUS = "transition_status"
    VIEW_REPORTS = "view_reports"
    VIEW_LEADERBOARD = "view_leaderboard"
    VIEW_ANALYTICS = "view_analytics"


ADMIN_ACTIONS = {Action.TRANSITION_STATUS, Action.VIEW_ANALYTICS}


def authorize(
    actor: Optional[models.Account],
    action: Action,
    resource: Optional[models.Report] = None,
) -> models.Account:
    """
    Raise UnauthorizedError / ForbiddenError unless actor may perform action.

    Returns the actor so dependencies can chain on it.
    """
    if actor is None:
        raise UnauthorizedError("Not authorized, no token provided")

    if action in ADMIN_ACTIONS:
        if actor.role != Role.ADMIN.value:
            raise ForbiddenError("Access denied. Admin only.")
        return actor

    if action == Action.CREATE_REPORT:
        if actor.role != Role.USER.value:
            raise ForbiddenError("Only reporters can submit reports")
        return actor

    if action == Action.DELETE_REPORT:
        if resource is None or resource.user_id != actor.id:
            raise ForbiddenError("Not authorized to delete this report")
        return actor

    return actor
