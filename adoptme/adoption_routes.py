"""HTTP endpoints for adoption requests."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from .adoptions import AdoptionService
from .models import Subject
from .schemas import CreateAdoptionRequest, TransitionRequest, UpdateAdoptionRequest
from .security import TokenAuth
from .views import adoption_to_view, event_to_view, many, paginated, success


def build_adoption_router(adoptions: AdoptionService, auth: TokenAuth) -> APIRouter:
    router = APIRouter(prefix="/adoptions", tags=["adoptions"])

    @router.get("")
    async def list_adoptions(
        page: int = 1,
        limit: int = 10,
        status_filter: Optional[str] = Query(default=None, alias="status"),
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        result = await adoptions.list_all(subject, page=page, limit=limit, status=status_filter)
        return paginated(result, adoption_to_view)

    @router.get("/mine")
    async def list_my_adoptions(
        page: int = 1,
        limit: int = 10,
        status_filter: Optional[str] = Query(default=None, alias="status"),
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        result = await adoptions.list_for_user(
            subject, subject.id, page=page, limit=limit, status=status_filter
        )
        return paginated(result, adoption_to_view)

    @router.get("/stats")
    async def adoption_statistics(subject: Subject = Depends(auth)) -> Dict[str, Any]:
        return success(await adoptions.statistics(subject))

    @router.get("/user/{uid}")
    async def list_user_adoptions(
        uid: str,
        page: int = 1,
        limit: int = 10,
        status_filter: Optional[str] = Query(default=None, alias="status"),
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        result = await adoptions.list_for_user(
            subject, uid, page=page, limit=limit, status=status_filter
        )
        return paginated(result, adoption_to_view)

    @router.post("/user/{uid}/pet/{pid}", status_code=status.HTTP_201_CREATED)
    async def create_adoption(
        uid: str,
        pid: str,
        payload: Optional[CreateAdoptionRequest] = Body(default=None),
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        payload = payload or CreateAdoptionRequest()
        adoption = await adoptions.create_request(
            subject, uid, pid, notes=payload.notes, adoption_fee=payload.adoptionFee
        )
        return success(adoption_to_view(adoption), message="Adoption request created")

    @router.get("/{aid}")
    async def read_adoption(aid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        return success(adoption_to_view(await adoptions.get(subject, aid)))

    @router.get("/{aid}/events")
    async def adoption_history(aid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        events = await adoptions.history(subject, aid)
        return success(many(events, event_to_view))

    @router.put("/{aid}")
    async def update_adoption(
        aid: str,
        changes: UpdateAdoptionRequest,
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        adoption = await adoptions.update(subject, aid, changes)
        return success(adoption_to_view(adoption), message="Adoption updated")

    transitions = {
        "approve": adoptions.approve,
        "reject": adoptions.reject,
        "complete": adoptions.complete,
        "cancel": adoptions.cancel,
    }

    for name, apply in transitions.items():
        router.add_api_route(
            f"/{{aid}}/{name}",
            _transition_endpoint(apply, auth),
            methods=["POST"],
            name=f"{name}_adoption",
        )

    @router.post("/{aid}/repair")
    async def repair_adoption(aid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        adoption, repaired = await adoptions.repair(subject, aid)
        message = "Ownership repaired" if repaired else "Nothing to repair"
        return success(
            {"adoption": adoption_to_view(adoption), "repaired": repaired}, message=message
        )

    @router.delete("/{aid}")
    async def delete_adoption(aid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        adoption = await adoptions.delete(subject, aid)
        return success(adoption_to_view(adoption), message="Adoption deleted")

    return router


def _transition_endpoint(apply, auth: TokenAuth):
    async def endpoint(
        aid: str,
        payload: Optional[TransitionRequest] = Body(default=None),
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        notes = payload.notes if payload is not None else None
        adoption = await apply(subject, aid, notes=notes)
        return success(adoption_to_view(adoption))

    return endpoint


__all__ = ["build_adoption_router"]
