"""Identity and role checks for adoption and account actions.

The gate only answers "may this subject attempt this action on this record".
State based checks (is the transition legal, is the adoption deletable) belong
to the services and run after the gate has admitted the subject.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from .errors import ForbiddenError
from .models import Adoption, Subject


class Action(str, Enum):
    LIST_ALL_ADOPTIONS = "list-all-adoptions"
    READ_ADOPTION = "read-adoption"
    CREATE = "create"
    PATCH_NOTES = "patch-notes"
    PATCH_FEE = "patch-fee"
    APPROVE = "approve"
    REJECT = "reject"
    COMPLETE = "complete"
    CANCEL = "cancel"
    DELETE = "delete"
    LIST_USER_ADOPTIONS = "list-user-adoptions"
    VIEW_STATISTICS = "view-statistics"
    LIST_USERS = "list-users"
    READ_USER = "read-user"
    UPDATE_USER = "update-user"
    CHANGE_ROLE = "change-role"
    DELETE_USER = "delete-user"
    MANAGE_DOCUMENTS = "manage-documents"
    MANAGE_PETS = "manage-pets"
    REPAIR = "repair"


ADMIN_ONLY = frozenset(
    {
        Action.PATCH_FEE,
        Action.APPROVE,
        Action.REJECT,
        Action.COMPLETE,
        Action.DELETE,
        Action.VIEW_STATISTICS,
        Action.LIST_USERS,
        Action.CHANGE_ROLE,
        Action.DELETE_USER,
        Action.MANAGE_PETS,
        Action.REPAIR,
    }
)

_ADMIN_OR_OWNER = frozenset({Action.PATCH_NOTES, Action.CANCEL})
_ADMIN_OR_SELF = frozenset(
    {
        Action.LIST_USER_ADOPTIONS,
        Action.READ_USER,
        Action.UPDATE_USER,
        Action.MANAGE_DOCUMENTS,
    }
)


def allow(
    subject: Optional[Subject],
    action: Action,
    adoption: Optional[Adoption] = None,
    *,
    pet_owner_id: Optional[str] = None,
    target_user_id: Optional[str] = None,
) -> bool:
    """Return whether ``subject`` may perform ``action``.

    ``adoption`` is required for actions on an existing adoption,
    ``target_user_id`` for actions scoped to a user (including creation, where
    it names the requesting user), and ``pet_owner_id`` optionally widens
    read access to the current owner of the adopted pet.
    """

    if subject is None:
        return False

    if action is Action.LIST_ALL_ADOPTIONS:
        return True

    if action in ADMIN_ONLY:
        return subject.is_admin

    if action is Action.CREATE:
        return target_user_id is not None and subject.id == target_user_id

    if action is Action.READ_ADOPTION:
        if subject.is_admin:
            return True
        if adoption is not None and subject.id == adoption.owner_id:
            return True
        return pet_owner_id is not None and subject.id == pet_owner_id

    if action in _ADMIN_OR_OWNER:
        if subject.is_admin:
            return True
        return adoption is not None and subject.id == adoption.owner_id

    if action in _ADMIN_OR_SELF:
        if subject.is_admin:
            return True
        return target_user_id is not None and subject.id == target_user_id

    return False


def require(
    subject: Optional[Subject],
    action: Action,
    adoption: Optional[Adoption] = None,
    *,
    pet_owner_id: Optional[str] = None,
    target_user_id: Optional[str] = None,
    message: str = "You do not have permission to perform this action",
) -> None:
    if not allow(
        subject,
        action,
        adoption,
        pet_owner_id=pet_owner_id,
        target_user_id=target_user_id,
    ):
        raise ForbiddenError(message)


__all__ = ["ADMIN_ONLY", "Action", "allow", "require"]
