"""Pet catalogue management."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from .authorization import Action, require
from .database import Database
from .errors import (
    InFlightConflictError,
    NotFoundError,
    PetAlreadyAdoptedError,
    ValidationError,
)
from .models import Location, Page, Pet, PetStatus, Species, Subject
from .schemas import CreatePetRequest, UpdatePetRequest, parse_model
from .store import new_id, utcnow
from .validation import check_pagination, ensure_object_id

logger = logging.getLogger("adoptme.pets")

UPDATABLE_FIELDS = (
    "name",
    "specie",
    "breed",
    "birthDate",
    "image",
    "description",
    "location",
    "status",
)
_STORE_NAMES = {"birthDate": "birth_date"}


def parse_specie(value: Any) -> Species:
    try:
        return Species(value)
    except ValueError:
        allowed = ", ".join(specie.value for specie in Species)
        raise ValidationError(
            f"Invalid specie '{value}'. Expected one of: {allowed}", fields=("specie",)
        ) from None


def parse_pet_status(value: Any) -> PetStatus:
    try:
        return PetStatus(value)
    except ValueError:
        allowed = ", ".join(status.value for status in PetStatus)
        raise ValidationError(
            f"Invalid status '{value}'. Expected one of: {allowed}", fields=("status",)
        ) from None


def parse_adopted(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in {"true", "false"}:
        return value.lower() == "true"
    raise ValidationError("adopted must be true or false", fields=("adopted",))


def _store_fields(request: Union[CreatePetRequest, UpdatePetRequest]) -> Dict[str, Any]:
    """Translate the fields the caller sent into pet attributes."""

    fields: Dict[str, Any] = {}
    for name in request.model_fields_set:
        value = getattr(request, name)
        if name == "location" and value is not None:
            value = Location(**value.model_dump())
        fields[_STORE_NAMES.get(name, name)] = value
    return fields


class PetService:
    def __init__(self, database: Database) -> None:
        self._database = database

    async def list_pets(
        self,
        subject: Subject,
        *,
        page: int = 1,
        limit: int = 10,
        specie: Optional[str] = None,
        adopted: Optional[Any] = None,
        status: Optional[str] = None,
    ) -> Page[Pet]:
        page, limit = check_pagination(page, limit)
        predicate: Dict[str, Any] = {}
        if specie:
            predicate["specie"] = parse_specie(specie)
        if adopted is not None:
            predicate["adopted"] = parse_adopted(adopted)
        if status:
            predicate["status"] = parse_pet_status(status)
        return await self._database.run(
            self._database.pets.find_paginated, predicate, page=page, limit=limit
        )

    async def get(self, subject: Subject, pet_id: str) -> Pet:
        return await self._load(ensure_object_id(pet_id, "pet id"))

    async def create(
        self, subject: Subject, payload: Union[CreatePetRequest, Mapping[str, Any]]
    ) -> Pet:
        fields = _store_fields(parse_model(CreatePetRequest, payload))
        require(subject, Action.MANAGE_PETS, message="Only administrators can manage pets")

        now = utcnow()
        pet = Pet(
            id=new_id(),
            created_at=now,
            updated_at=now,
            adopted=False,
            status=PetStatus.AVAILABLE,
            owner_id=None,
            **fields,
        )
        created = await self._database.run(self._database.pets.insert, pet)
        logger.info("Pet %s (%s) created by %s", created.id, created.name, subject.id)
        return created

    async def update(
        self,
        subject: Subject,
        pet_id: str,
        payload: Union[UpdatePetRequest, Mapping[str, Any]],
    ) -> Pet:
        pet_id = ensure_object_id(pet_id, "pet id")
        fields = _store_fields(parse_model(UpdatePetRequest, payload))
        if not fields:
            raise ValidationError(
                "Provide at least one of: " + ", ".join(UPDATABLE_FIELDS),
                fields=UPDATABLE_FIELDS,
            )
        require(subject, Action.MANAGE_PETS, message="Only administrators can manage pets")

        pet = await self._load(pet_id)
        if "status" in fields:
            if pet.adopted:
                raise PetAlreadyAdoptedError("Pet is already adopted")
            updated = await self._database.run(
                self._database.pets.patch, pet.id, fields, where={"adopted": False}
            )
            if updated is None:
                current = await self._load(pet.id)
                if current.adopted:
                    raise PetAlreadyAdoptedError("Pet is already adopted")
                raise NotFoundError("Pet not found")
            return updated

        updated = await self._database.run(self._database.pets.patch, pet.id, fields)
        if updated is None:
            raise NotFoundError("Pet not found")
        return updated

    async def delete(self, subject: Subject, pet_id: str) -> Pet:
        pet_id = ensure_object_id(pet_id, "pet id")
        require(subject, Action.MANAGE_PETS, message="Only administrators can manage pets")
        pet = await self._load(pet_id)
        if pet.adopted:
            raise PetAlreadyAdoptedError("Cannot delete an adopted pet")

        deleted = await self._database.run(self._database.pets.delete_if_unadopted, pet.id)
        if not deleted:
            current = await self._database.run(self._database.pets.find_by_id, pet.id)
            if current is None:
                raise NotFoundError("Pet not found")
            if current.adopted:
                raise PetAlreadyAdoptedError("Cannot delete an adopted pet")
            raise InFlightConflictError("Pet has an adoption request in progress")

        logger.info("Pet %s deleted by %s", pet.id, subject.id)
        return pet

    async def _load(self, pet_id: str) -> Pet:
        pet = await self._database.run(self._database.pets.find_by_id, pet_id)
        if pet is None:
            raise NotFoundError("Pet not found")
        return pet


__all__ = ["PetService", "parse_specie", "parse_pet_status"]
