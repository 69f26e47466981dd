"""Adoption lifecycle: request, approval, rejection, cancellation and completion.

Every operation checks its input before touching the store, runs the
authorization gate before any state check, and uses conditional writes for
the moments where two requests may race (creating a pending request and
moving it out of ``pending``). Approval touches three aggregates without a
shared transaction; each of those writes is idempotent and ``repair`` replays
them until the pet and the adopter's owned set agree with the adoption.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .authorization import ADMIN_ONLY, Action, require
from .database import Database
from .errors import (
    DuplicateKeyError,
    InFlightConflictError,
    InvalidTransitionError,
    NotFoundError,
    PetAlreadyAdoptedError,
    ValidationError,
)
from .models import (
    DELETABLE_STATUSES,
    OWNERSHIP_STATUSES,
    Adoption,
    AdoptionEvent,
    AdoptionStatus,
    Page,
    Pet,
    PetStatus,
    Subject,
)
from .schemas import (
    CreateAdoptionRequest,
    TransitionRequest,
    UpdateAdoptionRequest,
    parse_model,
)
from .store import new_id, utcnow
from .validation import check_pagination, ensure_object_id

logger = logging.getLogger("adoptme.adoptions")

TRANSITIONS: Dict[AdoptionStatus, Dict[AdoptionStatus, Action]] = {
    AdoptionStatus.PENDING: {
        AdoptionStatus.APPROVED: Action.APPROVE,
        AdoptionStatus.REJECTED: Action.REJECT,
        AdoptionStatus.CANCELLED: Action.CANCEL,
    },
    AdoptionStatus.APPROVED: {
        AdoptionStatus.COMPLETED: Action.COMPLETE,
    },
}

_ACTION_FOR_TARGET = {
    AdoptionStatus.APPROVED: Action.APPROVE,
    AdoptionStatus.REJECTED: Action.REJECT,
    AdoptionStatus.CANCELLED: Action.CANCEL,
    AdoptionStatus.COMPLETED: Action.COMPLETE,
}

UPDATABLE_FIELDS = ("status", "notes", "adoptionFee")


def parse_status(value: Any, field: str = "status") -> AdoptionStatus:
    try:
        return AdoptionStatus(value)
    except ValueError:
        allowed = ", ".join(status.value for status in AdoptionStatus)
        raise ValidationError(
            f"Invalid status '{value}'. Expected one of: {allowed}", fields=(field,)
        ) from None


def _detail_fields(request: CreateAdoptionRequest) -> Dict[str, Any]:
    """Notes and fee the caller actually sent, keyed by adoption attribute."""

    fields: Dict[str, Any] = {}
    if "notes" in request.model_fields_set:
        fields["notes"] = request.notes
    if "adoptionFee" in request.model_fields_set:
        fields["adoption_fee"] = request.adoptionFee
    return fields


class AdoptionService:
    """Policy engine for adoption requests."""

    def __init__(self, database: Database) -> None:
        self._database = database

    @property
    def database(self) -> Database:
        return self._database

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_all(
        self,
        subject: Subject,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
    ) -> Page[Adoption]:
        page, limit = check_pagination(page, limit)
        predicate = {"status": parse_status(status)} if status else None
        require(subject, Action.LIST_ALL_ADOPTIONS)
        return await self._database.run(
            self._database.adoptions.find_paginated, predicate, page=page, limit=limit
        )

    async def get(self, subject: Subject, adoption_id: str) -> Adoption:
        adoption_id = ensure_object_id(adoption_id, "adoption id")
        adoption = await self._load(adoption_id)
        pet = await self._database.run(self._database.pets.find_by_id, adoption.pet_id)
        require(
            subject,
            Action.READ_ADOPTION,
            adoption,
            pet_owner_id=pet.owner_id if pet is not None else None,
            message="You can only view your own adoptions",
        )
        if adoption.status in OWNERSHIP_STATUSES:
            await self._repair(adoption, pet)
        return adoption

    async def history(self, subject: Subject, adoption_id: str) -> List[AdoptionEvent]:
        adoption_id = ensure_object_id(adoption_id, "adoption id")
        adoption = await self._load(adoption_id)
        pet = await self._database.run(self._database.pets.find_by_id, adoption.pet_id)
        require(
            subject,
            Action.READ_ADOPTION,
            adoption,
            pet_owner_id=pet.owner_id if pet is not None else None,
            message="You can only view your own adoptions",
        )
        return await self._database.run(self._database.adoptions.events, adoption.id)

    async def list_for_user(
        self,
        subject: Subject,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
    ) -> Page[Adoption]:
        user_id = ensure_object_id(user_id, "user id")
        page, limit = check_pagination(page, limit)
        status_filter = parse_status(status) if status else None
        require(
            subject,
            Action.LIST_USER_ADOPTIONS,
            target_user_id=user_id,
            message="You can only view your own adoptions",
        )
        user = await self._database.run(self._database.users.find_by_id, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return await self._database.run(
            self._database.adoptions.find_user_adoptions,
            user.id,
            status=status_filter,
            page=page,
            limit=limit,
        )

    async def statistics(self, subject: Subject) -> Dict[str, int]:
        require(subject, Action.VIEW_STATISTICS)
        counts = await self._database.run(self._database.adoptions.count_by_status)
        summary = {status.value: total for status, total in counts.items()}
        summary["total"] = sum(counts.values())
        return summary

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def create_request(
        self,
        subject: Subject,
        user_id: str,
        pet_id: str,
        *,
        notes: Optional[str] = None,
        adoption_fee: Optional[float] = None,
    ) -> Adoption:
        """Open a pending adoption of ``pet_id`` for ``user_id``."""

        user_id = ensure_object_id(user_id, "user id")
        pet_id = ensure_object_id(pet_id, "pet id")
        details = parse_model(
            CreateAdoptionRequest, {"notes": notes, "adoptionFee": adoption_fee}
        )
        require(
            subject,
            Action.CREATE,
            target_user_id=user_id,
            message="You can only create adoption requests for yourself",
        )

        run = self._database.run
        user = await run(self._database.users.find_by_id, user_id)
        if user is None:
            raise NotFoundError("User not found")
        pet = await run(self._database.pets.find_by_id, pet_id)
        if pet is None:
            raise NotFoundError("Pet not found")
        if pet.adopted:
            raise PetAlreadyAdoptedError("Pet is already adopted")

        if await run(self._database.adoptions.find_in_flight_for_pet, pet.id) is not None:
            raise InFlightConflictError("Pet already has an adoption request in progress")

        completed = await run(
            self._database.adoptions.find_one,
            {"pet_id": pet.id, "status": AdoptionStatus.COMPLETED},
        )
        if completed is not None:
            await self._repair(completed, pet)
            raise PetAlreadyAdoptedError("Pet is already adopted")

        now = utcnow()
        adoption = Adoption(
            id=new_id(),
            owner_id=user.id,
            pet_id=pet.id,
            status=AdoptionStatus.PENDING,
            created_at=now,
            updated_at=now,
            notes=details.notes,
            adoption_fee=details.adoptionFee,
        )
        try:
            created = await run(self._database.adoptions.insert, adoption, actor_id=subject.id)
        except DuplicateKeyError as exc:
            if "adoptions.pet_id" in exc.fields:
                raise InFlightConflictError(
                    "Pet already has an adoption request in progress"
                ) from exc
            raise

        logger.info(
            "Adoption %s requested by user %s for pet %s", created.id, user.id, pet.id
        )
        return created

    async def update(
        self,
        subject: Subject,
        adoption_id: str,
        changes: Union[UpdateAdoptionRequest, Mapping[str, Any]],
    ) -> Adoption:
        """Apply a partial update: a status change and/or notes and fee."""

        adoption_id = ensure_object_id(adoption_id, "adoption id")
        request = parse_model(UpdateAdoptionRequest, changes)
        if not request.model_fields_set:
            raise ValidationError(
                "Provide at least one of: " + ", ".join(UPDATABLE_FIELDS),
                fields=UPDATABLE_FIELDS,
            )
        status = request.status
        fields = _detail_fields(request)
        target_action = _ACTION_FOR_TARGET.get(status) if status else None
        if target_action in ADMIN_ONLY:
            require(subject, target_action)
        if "adoption_fee" in fields:
            require(subject, Action.PATCH_FEE, message="Only administrators can set the adoption fee")

        adoption = await self._load(adoption_id)

        if status is not None and status is not adoption.status:
            if target_action is None:
                require(subject, Action.PATCH_NOTES, adoption)
                raise InvalidTransitionError(
                    f"Cannot change adoption status from {adoption.status.value} "
                    f"to {status.value}"
                )
            return await self._transition(subject, adoption, status, fields=fields)

        if fields:
            return await self._patch_details(subject, adoption, fields)

        require(subject, target_action or Action.PATCH_NOTES, adoption)
        if adoption.status in OWNERSHIP_STATUSES:
            await self._repair(adoption)
        return adoption

    async def approve(self, subject: Subject, adoption_id: str, *, notes: Optional[str] = None) -> Adoption:
        return await self._apply(subject, adoption_id, AdoptionStatus.APPROVED, notes=notes)

    async def reject(self, subject: Subject, adoption_id: str, *, notes: Optional[str] = None) -> Adoption:
        return await self._apply(subject, adoption_id, AdoptionStatus.REJECTED, notes=notes)

    async def cancel(self, subject: Subject, adoption_id: str, *, notes: Optional[str] = None) -> Adoption:
        return await self._apply(subject, adoption_id, AdoptionStatus.CANCELLED, notes=notes)

    async def complete(self, subject: Subject, adoption_id: str, *, notes: Optional[str] = None) -> Adoption:
        return await self._apply(subject, adoption_id, AdoptionStatus.COMPLETED, notes=notes)

    async def delete(self, subject: Subject, adoption_id: str) -> Adoption:
        adoption_id = ensure_object_id(adoption_id, "adoption id")
        require(subject, Action.DELETE, message="Only administrators can delete adoptions")
        adoption = await self._load(adoption_id)
        if adoption.status not in DELETABLE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot delete an adoption with status: {adoption.status.value}"
            )

        deleted = await self._database.run(
            self._database.adoptions.delete,
            adoption.id,
            where={"status": DELETABLE_STATUSES},
        )
        if not deleted:
            current = await self._load(adoption.id)
            raise InvalidTransitionError(
                f"Cannot delete an adoption with status: {current.status.value}"
            )

        logger.info("Adoption %s deleted by %s", adoption.id, subject.id)
        return adoption

    async def repair(self, subject: Subject, adoption_id: str) -> Tuple[Adoption, bool]:
        """Reapply missing ownership side effects of an approved adoption.

        Returns the adoption together with whether anything had to be written.
        """

        adoption_id = ensure_object_id(adoption_id, "adoption id")
        require(subject, Action.REPAIR, message="Only administrators can repair adoptions")
        adoption = await self._load(adoption_id)
        repaired = await self._repair(adoption)
        if repaired:
            logger.warning("Adoption %s needed repair, requested by %s", adoption.id, subject.id)
        return adoption, repaired

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _load(self, adoption_id: str) -> Adoption:
        adoption = await self._database.run(self._database.adoptions.find_by_id, adoption_id)
        if adoption is None:
            raise NotFoundError("Adoption not found")
        return adoption

    async def _apply(
        self,
        subject: Subject,
        adoption_id: str,
        target: AdoptionStatus,
        *,
        notes: Optional[str] = None,
    ) -> Adoption:
        adoption_id = ensure_object_id(adoption_id, "adoption id")
        fields: Dict[str, Any] = {}
        notes = parse_model(TransitionRequest, {"notes": notes}).notes
        if notes is not None:
            fields["notes"] = notes
        action = _ACTION_FOR_TARGET[target]
        if action in ADMIN_ONLY:
            require(subject, action)
        adoption = await self._load(adoption_id)
        return await self._transition(subject, adoption, target, fields=fields)

    async def _transition(
        self,
        subject: Subject,
        adoption: Adoption,
        target: AdoptionStatus,
        *,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Adoption:
        action = _ACTION_FOR_TARGET[target]
        require(subject, action, adoption)

        if adoption.status is target and target is AdoptionStatus.APPROVED:
            await self._repair(adoption)
            return adoption

        if target not in TRANSITIONS.get(adoption.status, {}):
            raise InvalidTransitionError(
                f"Cannot change adoption status from {adoption.status.value} to {target.value}"
            )

        pet: Optional[Pet] = None
        if target is AdoptionStatus.APPROVED:
            pet = await self._database.run(self._database.pets.find_by_id, adoption.pet_id)
            if pet is None:
                raise NotFoundError("Pet not found")
            if pet.adopted and pet.owner_id != adoption.owner_id:
                raise PetAlreadyAdoptedError("Pet is already adopted")

        updated = await self._database.run(
            self._database.adoptions.transition,
            adoption.id,
            from_status=adoption.status,
            to_status=target,
            actor_id=subject.id,
            fields=fields,
        )
        if updated is None:
            current = await self._load(adoption.id)
            if target is AdoptionStatus.APPROVED and current.status is AdoptionStatus.APPROVED:
                await self._repair(current)
                return current
            raise InvalidTransitionError(
                f"Cannot change adoption status from {current.status.value} to {target.value}"
            )

        logger.info(
            "Adoption %s moved from %s to %s by %s",
            adoption.id,
            adoption.status.value,
            target.value,
            subject.id,
        )
        if target in OWNERSHIP_STATUSES:
            await self._repair(updated, pet)
        return updated

    async def _patch_details(
        self, subject: Subject, adoption: Adoption, fields: Mapping[str, Any]
    ) -> Adoption:
        require(subject, Action.PATCH_NOTES, adoption)
        if adoption.terminal:
            raise InvalidTransitionError(
                f"Cannot modify an adoption with status: {adoption.status.value}"
            )
        updated = await self._database.run(
            self._database.adoptions.patch,
            adoption.id,
            fields,
            where={"status": adoption.status},
        )
        if updated is None:
            current = await self._load(adoption.id)
            raise InvalidTransitionError(
                f"Cannot modify an adoption with status: {current.status.value}"
            )
        return updated

    async def _repair(self, adoption: Adoption, pet: Optional[Pet] = None) -> bool:
        if adoption.status not in OWNERSHIP_STATUSES:
            return False

        run = self._database.run
        if pet is None or pet.id != adoption.pet_id:
            pet = await run(self._database.pets.find_by_id, adoption.pet_id)
        if pet is None:
            logger.warning("Adoption %s refers to missing pet %s", adoption.id, adoption.pet_id)
            return False
        if pet.adopted and pet.owner_id != adoption.owner_id:
            logger.error(
                "Pet %s is owned by %s but adoption %s belongs to %s",
                pet.id,
                pet.owner_id,
                adoption.id,
                adoption.owner_id,
            )
            return False

        repaired = False
        ownership = {"adopted": True, "owner_id": adoption.owner_id, "status": PetStatus.ADOPTED}
        if not pet.adopted:
            patched = await run(
                self._database.pets.patch, pet.id, ownership, where={"adopted": False}
            )
            if patched is None:
                current = await run(self._database.pets.find_by_id, pet.id)
                if current is None or current.owner_id != adoption.owner_id:
                    logger.error(
                        "Pet %s was claimed by another adoption before %s", pet.id, adoption.id
                    )
                    return False
            repaired = patched is not None
        elif pet.status is not PetStatus.ADOPTED:
            patched = await run(
                self._database.pets.patch,
                pet.id,
                {"status": PetStatus.ADOPTED},
                where={"owner_id": adoption.owner_id},
            )
            repaired = patched is not None

        if await run(self._database.users.push_pet, adoption.owner_id, pet.id):
            repaired = True

        if repaired:
            logger.info(
                "Applied ownership of pet %s to user %s for adoption %s",
                pet.id,
                adoption.owner_id,
                adoption.id,
            )
        return repaired


__all__ = ["AdoptionService", "TRANSITIONS", "UPDATABLE_FIELDS", "parse_status"]
