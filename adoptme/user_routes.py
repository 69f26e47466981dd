"""HTTP endpoints for user accounts and their documents."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from .models import Subject
from .schemas import DocumentRequest, UpdateUserRequest
from .security import TokenAuth
from .users import UserService
from .views import (
    document_check_to_view,
    document_to_view,
    many,
    paginated,
    success,
    user_to_profile,
)


def build_user_router(users: UserService, auth: TokenAuth) -> APIRouter:
    router = APIRouter(prefix="/users", tags=["users"])

    @router.get("")
    async def list_users(
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        result = await users.list_users(subject, page=page, limit=limit, role=role)
        return paginated(result, user_to_profile)

    @router.get("/{uid}")
    async def read_user(uid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        return success(user_to_profile(await users.get(subject, uid)))

    @router.put("/{uid}")
    async def update_user(
        uid: str,
        changes: UpdateUserRequest,
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        user = await users.update(subject, uid, changes)
        return success(user_to_profile(user), message="User updated")

    @router.delete("/{uid}")
    async def delete_user(uid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        user = await users.delete(subject, uid)
        return success(user_to_profile(user), message="User deleted")

    @router.get("/{uid}/documents")
    async def list_documents(uid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        documents = await users.documents(subject, uid)
        return success(many(documents, document_to_view))

    @router.post("/{uid}/documents", status_code=status.HTTP_201_CREATED)
    async def add_document(
        uid: str,
        payload: DocumentRequest,
        subject: Subject = Depends(auth),
    ) -> Dict[str, Any]:
        user = await users.add_document(subject, uid, payload.name, payload.reference)
        return success(
            {"user": user_to_profile(user), "documents": many(user.documents, document_to_view)},
            message="Document added",
        )

    # Registered before ``/{did}`` so "check" is never taken for a document id.
    @router.get("/{uid}/documents/check")
    async def check_documents(uid: str, subject: Subject = Depends(auth)) -> Dict[str, Any]:
        user, requirements = await users.check_documents(subject, uid)
        return success(document_check_to_view(user, requirements))

    @router.get("/{uid}/documents/{did}")
    async def read_document(
        uid: str, did: str, subject: Subject = Depends(auth)
    ) -> Dict[str, Any]:
        user, document = await users.document(subject, uid, did)
        return success(
            {"document": document_to_view(document), "user": {"id": user.id, "name": user.full_name}}
        )

    @router.delete("/{uid}/documents/{did}")
    async def delete_document(
        uid: str, did: str, subject: Subject = Depends(auth)
    ) -> Dict[str, Any]:
        document, remaining = await users.delete_document(subject, uid, did)
        return success(
            {
                "deletedDocument": document_to_view(document),
                "remainingDocuments": len(remaining),
            },
            message="Document deleted",
        )

    return router


__all__ = ["build_user_router"]
