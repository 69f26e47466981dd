"""SQLite-backed collections for users, pets and adoptions.

Each collection exposes the same primitive contract (``find_by_id``,
``find_one``, ``find_paginated``, ``insert``, ``patch``, ``delete`` and
``count``) plus the handful of targeted queries the adoption workflow needs.
Collections never enforce invariants that span more than one aggregate.
"""
from __future__ import annotations

import json
import secrets
import sqlite3
from dataclasses import asdict, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import (
    Any,
    Callable,
    ContextManager,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
)

from .models import (
    IN_FLIGHT_STATUSES,
    Adoption,
    AdoptionEvent,
    AdoptionStatus,
    Document,
    Location,
    Page,
    Pet,
    PetStatus,
    Role,
    Species,
    User,
)

Connector = Callable[[], ContextManager[sqlite3.Connection]]
Predicate = Mapping[str, Any]

T = TypeVar("T")

_MULTI_VALUE_TYPES = (list, tuple, set, frozenset)


def new_id() -> str:
    """Return a fresh 24 character hexadecimal identifier."""

    return secrets.token_hex(12)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        name=str(row["name"]),
        reference=str(row["reference"]),
        uploaded_at=_parse_datetime(str(row["uploaded_at"])),
        id=int(row["id"]),
    )


class Collection(Generic[T]):
    """Generic table access shared by every aggregate."""

    table: str = ""
    fields: Mapping[str, str] = {}
    order_by = "created_at DESC, rowid DESC"

    def __init__(self, connect: Connector) -> None:
        self._connect = connect

    # ------------------------------------------------------------------
    # Primitive contract
    # ------------------------------------------------------------------
    def find_by_id(self, entity_id: str) -> Optional[T]:
        with self._connect() as conn:
            return self._load_by_id(conn, entity_id)

    def find_one(self, predicate: Optional[Predicate] = None) -> Optional[T]:
        where, values = self._where(predicate)
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM {self.table}{where} ORDER BY {self.order_by} LIMIT 1",
                values,
            ).fetchone()
            if row is None:
                return None
            return self._load(conn, row)

    def find_paginated(
        self,
        predicate: Optional[Predicate] = None,
        *,
        page: int = 1,
        limit: int = 10,
    ) -> Page[T]:
        page = max(int(page), 1)
        limit = max(int(limit), 1)
        where, values = self._where(predicate)
        with self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM {self.table}{where}", values
            ).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM {self.table}{where} ORDER BY {self.order_by} LIMIT ? OFFSET ?",
                [*values, limit, (page - 1) * limit],
            ).fetchall()
            results = [self._load(conn, row) for row in rows]
        return Page(results=results, total=int(total), page=page, limit=limit)

    def insert(self, entity: T) -> T:
        with self._connect() as conn:
            self._insert(conn, entity)
            loaded = self._load_by_id(conn, self._entity_id(entity))
        if loaded is None:
            raise RuntimeError(f"Failed to load {self.table} row after insert")
        return loaded

    def patch(
        self,
        entity_id: str,
        fields: Mapping[str, Any],
        *,
        where: Optional[Predicate] = None,
    ) -> Optional[T]:
        """Set ``fields`` on one row; ``where`` makes the update conditional."""

        with self._connect() as conn:
            if not self._update(conn, entity_id, fields, where=where):
                return None
            return self._load_by_id(conn, entity_id)

    def delete(self, entity_id: str, *, where: Optional[Predicate] = None) -> bool:
        clause, values = self._where(where)
        condition = clause.replace(" WHERE ", " AND ", 1) if clause else ""
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM {self.table} WHERE id = ?{condition}",
                [entity_id, *values],
            )
            return cursor.rowcount > 0

    def count(self, predicate: Optional[Predicate] = None) -> int:
        where, values = self._where(predicate)
        with self._connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {self.table}{where}", values).fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _column(self, name: str) -> str:
        try:
            return self.fields[name]
        except KeyError:
            raise ValueError(f"Unknown field '{name}' for {self.table}") from None

    def _encode(self, name: str, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return value

    def _where(self, predicate: Optional[Predicate]) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        values: List[Any] = []
        for name, value in (predicate or {}).items():
            column = self._column(name)
            if value is None:
                clauses.append(f"{column} IS NULL")
            elif isinstance(value, _MULTI_VALUE_TYPES):
                items = [self._encode(name, item) for item in value]
                if not items:
                    clauses.append("0")
                    continue
                placeholders = ", ".join("?" for _ in items)
                clauses.append(f"{column} IN ({placeholders})")
                values.extend(items)
            else:
                clauses.append(f"{column} = ?")
                values.append(self._encode(name, value))
        if not clauses:
            return "", values
        return " WHERE " + " AND ".join(clauses), values

    def _update(
        self,
        conn: sqlite3.Connection,
        entity_id: str,
        fields: Mapping[str, Any],
        *,
        where: Optional[Predicate] = None,
    ) -> bool:
        assignments = dict(fields)
        if "updated_at" in self.fields and "updated_at" not in assignments:
            assignments["updated_at"] = utcnow()

        columns = [f"{self._column(name)} = ?" for name in assignments]
        values = [self._encode(name, value) for name, value in assignments.items()]
        clause, where_values = self._where(where)
        condition = clause.replace(" WHERE ", " AND ", 1) if clause else ""

        cursor = conn.execute(
            f"UPDATE {self.table} SET {', '.join(columns)} WHERE id = ?{condition}",
            [*values, entity_id, *where_values],
        )
        return cursor.rowcount > 0

    def _insert(self, conn: sqlite3.Connection, entity: T) -> None:
        row = self._entity_to_row(entity)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        conn.execute(
            f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})",
            list(row.values()),
        )

    def _load_by_id(self, conn: sqlite3.Connection, entity_id: str) -> Optional[T]:
        row = conn.execute(f"SELECT * FROM {self.table} WHERE id = ?", (entity_id,)).fetchone()
        if row is None:
            return None
        return self._load(conn, row)

    def _load(self, conn: sqlite3.Connection, row: sqlite3.Row) -> T:
        return self._row_to_entity(row)

    def _entity_id(self, entity: T) -> str:
        return getattr(entity, "id")

    def _entity_to_row(self, entity: T) -> Dict[str, Any]:
        raise NotImplementedError

    def _row_to_entity(self, row: sqlite3.Row) -> T:
        raise NotImplementedError


class UserCollection(Collection[User]):
    table = "users"
    fields = {
        "id": "id",
        "first_name": "first_name",
        "last_name": "last_name",
        "email": "email",
        "password_hash": "password_hash",
        "role": "role",
        "last_connection": "last_connection",
        "failed_login_attempts": "failed_login_attempts",
        "lock_until": "lock_until",
        "created_at": "created_at",
        "updated_at": "updated_at",
    }

    def find_by_email(self, email: str) -> Optional[User]:
        return self.find_one({"email": email.strip().lower()})

    def push_pet(self, user_id: str, pet_id: str) -> bool:
        """Append ``pet_id`` to the user's owned set unless already present."""

        now = utcnow()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO user_pets (user_id, pet_id, added_at) VALUES (?, ?, ?)",
                (user_id, pet_id, _serialize_datetime(now)),
            )
            added = cursor.rowcount > 0
            if added:
                conn.execute(
                    "UPDATE users SET updated_at = ? WHERE id = ?",
                    (_serialize_datetime(now), user_id),
                )
        return added

    def add_document(self, user_id: str, document: Document, *, limit: int) -> bool:
        """Attach a document reference while the user holds fewer than ``limit``."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO user_documents (user_id, name, reference, uploaded_at)
                SELECT ?, ?, ?, ?
                 WHERE (SELECT COUNT(*) FROM user_documents WHERE user_id = ?) < ?
                """,
                (
                    user_id,
                    document.name,
                    document.reference,
                    _serialize_datetime(document.uploaded_at),
                    user_id,
                    limit,
                ),
            )
            return cursor.rowcount > 0

    def find_document(self, user_id: str, document_id: int) -> Optional[Document]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_documents WHERE id = ? AND user_id = ?",
                (document_id, user_id),
            ).fetchone()
        return _row_to_document(row) if row is not None else None

    def remove_document(self, user_id: str, document_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM user_documents WHERE id = ? AND user_id = ?",
                (document_id, user_id),
            )
            return cursor.rowcount > 0

    def record_failed_login(self, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET failed_login_attempts = failed_login_attempts + 1 WHERE id = ?",
                (user_id,),
            )

    def record_login(self, user_id: str) -> Optional[User]:
        return self.patch(
            user_id,
            {"last_connection": utcnow(), "failed_login_attempts": 0, "lock_until": None},
        )

    def delete_if_inactive(self, user_id: str) -> bool:
        """Delete a user that owns no pets and has no live or successful adoptions."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM users
                 WHERE id = ?
                   AND NOT EXISTS (SELECT 1 FROM user_pets WHERE user_pets.user_id = users.id)
                   AND NOT EXISTS (
                       SELECT 1 FROM adoptions
                        WHERE adoptions.owner_id = users.id
                          AND adoptions.status IN ('pending', 'approved', 'completed')
                   )
                """,
                (user_id,),
            )
            return cursor.rowcount > 0

    def _insert(self, conn: sqlite3.Connection, entity: User) -> None:
        super()._insert(conn, entity)
        for pet_id in entity.pets:
            conn.execute(
                "INSERT OR IGNORE INTO user_pets (user_id, pet_id, added_at) VALUES (?, ?, ?)",
                (entity.id, pet_id, _serialize_datetime(entity.created_at)),
            )
        for document in entity.documents:
            conn.execute(
                "INSERT INTO user_documents (user_id, name, reference, uploaded_at) VALUES (?, ?, ?, ?)",
                (entity.id, document.name, document.reference, _serialize_datetime(document.uploaded_at)),
            )

    def _load(self, conn: sqlite3.Connection, row: sqlite3.Row) -> User:
        user = self._row_to_entity(row)
        pet_rows = conn.execute(
            "SELECT pet_id FROM user_pets WHERE user_id = ? ORDER BY added_at, rowid",
            (user.id,),
        ).fetchall()
        document_rows = conn.execute(
            "SELECT * FROM user_documents WHERE user_id = ? ORDER BY uploaded_at, id",
            (user.id,),
        ).fetchall()
        pets = tuple(str(item["pet_id"]) for item in pet_rows)
        documents = tuple(_row_to_document(item) for item in document_rows)
        return replace(user, pets=pets, documents=documents)

    def _entity_to_row(self, entity: User) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "first_name": entity.first_name,
            "last_name": entity.last_name,
            "email": entity.email.strip().lower(),
            "password_hash": entity.password_hash,
            "role": entity.role.value,
            "last_connection": _serialize_datetime(entity.last_connection),
            "failed_login_attempts": entity.failed_login_attempts,
            "lock_until": _serialize_datetime(entity.lock_until),
            "created_at": _serialize_datetime(entity.created_at),
            "updated_at": _serialize_datetime(entity.updated_at),
        }

    def _row_to_entity(self, row: sqlite3.Row) -> User:
        return User(
            id=str(row["id"]),
            first_name=str(row["first_name"]),
            last_name=str(row["last_name"]),
            email=str(row["email"]),
            password_hash=row["password_hash"],
            role=Role(row["role"]),
            last_connection=_parse_datetime(row["last_connection"]),
            failed_login_attempts=int(row["failed_login_attempts"]),
            lock_until=_parse_datetime(row["lock_until"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


class PetCollection(Collection[Pet]):
    table = "pets"
    fields = {
        "id": "id",
        "name": "name",
        "specie": "specie",
        "breed": "breed",
        "birth_date": "birth_date",
        "adopted": "adopted",
        "status": "status",
        "owner_id": "owner_id",
        "image": "image",
        "description": "description",
        "location": "location",
        "created_at": "created_at",
        "updated_at": "updated_at",
    }

    def delete_if_unadopted(self, pet_id: str) -> bool:
        """Delete a pet that is neither adopted nor part of a live adoption."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM pets
                 WHERE id = ?
                   AND adopted = 0
                   AND NOT EXISTS (
                       SELECT 1 FROM adoptions
                        WHERE adoptions.pet_id = pets.id
                          AND adoptions.status IN ('pending', 'approved')
                   )
                """,
                (pet_id,),
            )
            return cursor.rowcount > 0

    def _encode(self, name: str, value: Any) -> Any:
        if name == "location":
            if value is None:
                return None
            payload = asdict(value) if isinstance(value, Location) else dict(value)
            return json.dumps(payload, sort_keys=True)
        return super()._encode(name, value)

    def _entity_to_row(self, entity: Pet) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "name": entity.name,
            "specie": entity.specie.value,
            "breed": entity.breed,
            "birth_date": entity.birth_date.isoformat() if entity.birth_date else None,
            "adopted": int(entity.adopted),
            "status": entity.status.value,
            "owner_id": entity.owner_id,
            "image": entity.image,
            "description": entity.description,
            "location": self._encode("location", entity.location),
            "created_at": _serialize_datetime(entity.created_at),
            "updated_at": _serialize_datetime(entity.updated_at),
        }

    def _row_to_entity(self, row: sqlite3.Row) -> Pet:
        raw_location = row["location"]
        location = Location(**json.loads(raw_location)) if raw_location else None
        return Pet(
            id=str(row["id"]),
            name=str(row["name"]),
            specie=Species(row["specie"]),
            breed=row["breed"],
            birth_date=_parse_date(row["birth_date"]),
            adopted=bool(row["adopted"]),
            status=PetStatus(row["status"]),
            owner_id=row["owner_id"],
            image=row["image"],
            description=row["description"],
            location=location,
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


class AdoptionCollection(Collection[Adoption]):
    table = "adoptions"
    fields = {
        "id": "id",
        "owner_id": "owner_id",
        "pet_id": "pet_id",
        "status": "status",
        "notes": "notes",
        "adoption_fee": "adoption_fee",
        "created_at": "created_at",
        "updated_at": "updated_at",
    }

    def insert(self, entity: Adoption, *, actor_id: Optional[str] = None) -> Adoption:
        with self._connect() as conn:
            self._insert(conn, entity)
            self._append_event(
                conn,
                entity.id,
                from_status=None,
                to_status=entity.status,
                actor_id=actor_id,
                at=entity.created_at,
            )
            loaded = self._load_by_id(conn, entity.id)
        if loaded is None:
            raise RuntimeError("Failed to load adoption after insert")
        return loaded

    def find_in_flight_for_pet(self, pet_id: str) -> Optional[Adoption]:
        return self.find_one({"pet_id": pet_id, "status": IN_FLIGHT_STATUSES})

    def find_user_adoptions(
        self,
        user_id: str,
        *,
        status: Optional[AdoptionStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[Adoption]:
        predicate: Dict[str, Any] = {"owner_id": user_id}
        if status is not None:
            predicate["status"] = status
        return self.find_paginated(predicate, page=page, limit=limit)

    def transition(
        self,
        adoption_id: str,
        *,
        from_status: AdoptionStatus,
        to_status: AdoptionStatus,
        actor_id: Optional[str],
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Adoption]:
        """Move an adoption from ``from_status`` to ``to_status`` and record it.

        Returns ``None`` when the adoption is missing or no longer in
        ``from_status``; nothing is written in that case.
        """

        now = utcnow()
        assignments = {**dict(fields or {}), "status": to_status, "updated_at": now}
        with self._connect() as conn:
            if not self._update(conn, adoption_id, assignments, where={"status": from_status}):
                return None
            self._append_event(
                conn,
                adoption_id,
                from_status=from_status,
                to_status=to_status,
                actor_id=actor_id,
                at=now,
            )
            return self._load_by_id(conn, adoption_id)

    def events(self, adoption_id: str) -> List[AdoptionEvent]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM adoption_events WHERE adoption_id = ? ORDER BY id",
                (adoption_id,),
            ).fetchall()
        return [
            AdoptionEvent(
                id=int(row["id"]),
                adoption_id=str(row["adoption_id"]),
                from_status=AdoptionStatus(row["from_status"]) if row["from_status"] else None,
                to_status=AdoptionStatus(row["to_status"]),
                actor_id=row["actor_id"],
                created_at=_parse_datetime(str(row["created_at"])),
            )
            for row in rows
        ]

    def count_by_status(self) -> Dict[AdoptionStatus, int]:
        counts = {status: 0 for status in AdoptionStatus}
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS total FROM adoptions GROUP BY status"
            ).fetchall()
        for row in rows:
            counts[AdoptionStatus(row["status"])] = int(row["total"])
        return counts

    def _append_event(
        self,
        conn: sqlite3.Connection,
        adoption_id: str,
        *,
        from_status: Optional[AdoptionStatus],
        to_status: AdoptionStatus,
        actor_id: Optional[str],
        at: datetime,
    ) -> None:
        conn.execute(
            """
            INSERT INTO adoption_events (adoption_id, from_status, to_status, actor_id, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                adoption_id,
                from_status.value if from_status is not None else None,
                to_status.value,
                actor_id,
                _serialize_datetime(at),
            ),
        )

    def _entity_to_row(self, entity: Adoption) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "owner_id": entity.owner_id,
            "pet_id": entity.pet_id,
            "status": entity.status.value,
            "notes": entity.notes,
            "adoption_fee": entity.adoption_fee,
            "created_at": _serialize_datetime(entity.created_at),
            "updated_at": _serialize_datetime(entity.updated_at),
        }

    def _row_to_entity(self, row: sqlite3.Row) -> Adoption:
        fee = row["adoption_fee"]
        return Adoption(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            pet_id=str(row["pet_id"]),
            status=AdoptionStatus(row["status"]),
            notes=row["notes"],
            adoption_fee=float(fee) if fee is not None else None,
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


__all__ = [
    "AdoptionCollection",
    "Collection",
    "PetCollection",
    "UserCollection",
    "new_id",
    "utcnow",
]
