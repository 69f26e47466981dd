"""Account registration, login bookkeeping and profile management."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .authorization import Action, require
from .database import Database, hash_password, verify_password
from .errors import DuplicateKeyError, NotFoundError, UnauthenticatedError, ValidationError
from .models import Document, DocumentRequirement, Page, Role, Subject, User
from .schemas import (
    MIN_PASSWORD_LENGTH,
    DocumentRequest,
    RegisterRequest,
    UpdateUserRequest,
    parse_model,
)
from .store import new_id, utcnow
from .validation import check_pagination, ensure_document_id, ensure_object_id

logger = logging.getLogger("adoptme.users")

MAX_DOCUMENTS = 20
UPDATABLE_FIELDS = ("first_name", "last_name", "email", "role")
REQUIRED_DOCUMENTS: Dict[str, Tuple[str, ...]] = {
    "basic": ("identificacion", "comprobante_domicilio"),
    "premium": ("identificacion", "comprobante_domicilio", "comprobante_ingresos"),
    "adoption": ("identificacion", "comprobante_domicilio", "carta_motivacion"),
}


def parse_role(value: Any) -> Role:
    try:
        return Role(value)
    except ValueError:
        allowed = ", ".join(role.value for role in Role)
        raise ValidationError(
            f"Invalid role '{value}'. Expected one of: {allowed}", fields=("role",)
        ) from None


def document_requirements(documents: Tuple[Document, ...]) -> Dict[str, DocumentRequirement]:
    uploaded = {document.kind for document in documents}
    return {
        kind: DocumentRequirement(
            kind=kind,
            required=required,
            missing=tuple(name for name in required if name not in uploaded),
        )
        for kind, required in REQUIRED_DOCUMENTS.items()
    }


def _duplicate_email() -> ValidationError:
    return ValidationError("Email is already registered", fields=("email",))


class UserService:
    def __init__(self, database: Database) -> None:
        self._database = database

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        *,
        role: Role = Role.USER,
    ) -> User:
        request = parse_model(
            RegisterRequest,
            {
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "password": password,
            },
        )

        now = utcnow()
        user = User(
            id=new_id(),
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            role=role,
            created_at=now,
            updated_at=now,
            password_hash=hash_password(request.password),
        )
        try:
            created = await self._database.run(self._database.users.insert, user)
        except DuplicateKeyError as exc:
            raise _duplicate_email() from exc
        logger.info("Registered user %s with role %s", created.id, created.role.value)
        return created

    async def authenticate(self, email: str, password: str) -> User:
        """Return the user owning these credentials.

        Unknown emails and wrong passwords produce the same error.
        """

        failure = UnauthenticatedError("Invalid email or password")
        if not isinstance(email, str) or not isinstance(password, str):
            raise failure
        user = await self._database.run(self._database.users.find_by_email, email)
        if user is None:
            raise failure
        if not verify_password(password, user.password_hash):
            await self._database.run(self._database.users.record_failed_login, user.id)
            logger.warning("Failed login for user %s", user.id)
            raise failure
        refreshed = await self._database.run(self._database.users.record_login, user.id)
        return refreshed or user

    async def touch(self, user_id: str) -> None:
        await self._database.run(
            self._database.users.patch, user_id, {"last_connection": utcnow()}
        )

    async def get(self, subject: Subject, user_id: str) -> User:
        user_id = ensure_object_id(user_id, "user id")
        require(subject, Action.READ_USER, target_user_id=user_id)
        return await self._load(user_id)

    async def list_users(
        self,
        subject: Subject,
        *,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
    ) -> Page[User]:
        page, limit = check_pagination(page, limit)
        predicate = {"role": parse_role(role)} if role else None
        require(subject, Action.LIST_USERS)
        return await self._database.run(
            self._database.users.find_paginated, predicate, page=page, limit=limit
        )

    async def update(
        self,
        subject: Subject,
        user_id: str,
        changes: Union[UpdateUserRequest, Mapping[str, Any]],
    ) -> User:
        user_id = ensure_object_id(user_id, "user id")
        request = parse_model(UpdateUserRequest, changes)
        fields = {name: getattr(request, name) for name in request.model_fields_set}
        if not fields:
            raise ValidationError(
                "Provide at least one of: " + ", ".join(UPDATABLE_FIELDS),
                fields=UPDATABLE_FIELDS,
            )
        if "role" in fields:
            require(subject, Action.CHANGE_ROLE, message="Only administrators can change roles")

        require(subject, Action.UPDATE_USER, target_user_id=user_id)
        try:
            updated = await self._database.run(self._database.users.patch, user_id, fields)
        except DuplicateKeyError as exc:
            raise _duplicate_email() from exc
        if updated is None:
            raise NotFoundError("User not found")
        return updated

    async def delete(self, subject: Subject, user_id: str) -> User:
        user_id = ensure_object_id(user_id, "user id")
        require(subject, Action.DELETE_USER, message="Only administrators can delete users")
        user = await self._load(user_id)
        deleted = await self._database.run(self._database.users.delete_if_inactive, user.id)
        if not deleted:
            raise ValidationError(
                "Cannot delete a user who owns pets or has active adoptions",
                fields=("id",),
            )
        logger.info("User %s deleted by %s", user.id, subject.id)
        return user

    async def documents(self, subject: Subject, user_id: str) -> Tuple[Document, ...]:
        user = await self._document_owner(subject, user_id)
        return user.documents

    async def document(
        self, subject: Subject, user_id: str, document_id: str
    ) -> Tuple[User, Document]:
        user = await self._document_owner(subject, user_id, document_id)
        found = await self._database.run(
            self._database.users.find_document, user.id, ensure_document_id(document_id)
        )
        if found is None:
            raise NotFoundError("Document not found")
        return user, found

    async def delete_document(
        self, subject: Subject, user_id: str, document_id: str
    ) -> Tuple[Document, Tuple[Document, ...]]:
        """Remove one document and return it with the documents left behind."""

        user, document = await self.document(subject, user_id, document_id)
        removed = await self._database.run(
            self._database.users.remove_document, user.id, document.id
        )
        if not removed:
            raise NotFoundError("Document not found")
        logger.info("Document %s of user %s deleted by %s", document.id, user.id, subject.id)
        remaining = await self._load(user.id)
        return document, remaining.documents

    async def check_documents(
        self, subject: Subject, user_id: str
    ) -> Tuple[User, Dict[str, DocumentRequirement]]:
        user = await self._document_owner(subject, user_id)
        return user, document_requirements(user.documents)

    async def add_document(
        self, subject: Subject, user_id: str, name: Any, reference: Any
    ) -> User:
        user_id = ensure_object_id(user_id, "user id")
        request = parse_model(DocumentRequest, {"name": name, "reference": reference})
        document = Document(
            name=request.name,
            reference=request.reference,
            uploaded_at=utcnow(),
        )
        require(subject, Action.MANAGE_DOCUMENTS, target_user_id=user_id)
        user = await self._load(user_id)
        added = await self._database.run(
            self._database.users.add_document, user.id, document, limit=MAX_DOCUMENTS
        )
        if not added:
            raise ValidationError(
                f"A user can hold at most {MAX_DOCUMENTS} documents", fields=("documents",)
            )
        return await self._load(user.id)

    async def _document_owner(
        self, subject: Subject, user_id: str, document_id: Optional[str] = None
    ) -> User:
        user_id = ensure_object_id(user_id, "user id")
        if document_id is not None:
            ensure_document_id(document_id)
        require(subject, Action.MANAGE_DOCUMENTS, target_user_id=user_id)
        return await self._load(user_id)

    async def _load(self, user_id: str) -> User:
        user = await self._database.run(self._database.users.find_by_id, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user


__all__ = [
    "MAX_DOCUMENTS",
    "MIN_PASSWORD_LENGTH",
    "REQUIRED_DOCUMENTS",
    "UserService",
    "document_requirements",
    "parse_role",
]
