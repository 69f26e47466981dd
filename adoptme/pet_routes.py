"""HTTP endpoints for the pet catalogue."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from .models import Subject
from .pets import PetService
from .schemas import CreatePetRequest, UpdatePetRequest
from .security import TokenAuth
from .views import paginated, pet_to_view, success


def build_pet_router(pets: PetService, auth: TokenAuth) -> APIRouter:
    router = APIRouter(prefix="/pets", tags=["pets"])

    @router.get("")
    async def list_pets(
        page: int = 1,
        limit: int = 10,
        specie: Optional[str] = None,
        adopted: Optional[str] = None,
        status_filter: Optional[str] = Query(default=None, alias="status"),
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        result = await pets.list_pets(
            subject,
            page=page,
            limit=limit,
            specie=specie,
            adopted=adopted,
            status=status_filter,
        )
        return paginated(result, pet_to_view)

    @router.get("/{pid}")
    async def read_pet(pid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        return success(pet_to_view(await pets.get(subject, pid)))

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_pet(
        payload: CreatePetRequest,
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        pet = await pets.create(subject, payload)
        return success(pet_to_view(pet), message="Pet created")

    @router.put("/{pid}")
    async def update_pet(
        pid: str,
        payload: UpdatePetRequest,
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        pet = await pets.update(subject, pid, payload)
        return success(pet_to_view(pet), message="Pet updated")

    @router.delete("/{pid}")
    async def delete_pet(pid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        pet = await pets.delete(subject, pid)
        return success(pet_to_view(pet), message="Pet deleted")

    return router


__all__ = ["build_pet_router"]
