from __future__ import annotations

import functools
from pathlib import Path

import anyio
import pytest

from adoptme.adoptions import AdoptionService
from adoptme.database import Database
from adoptme.errors import (
    ForbiddenError,
    InvalidIdError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from adoptme.models import AdoptionStatus, Document, Pet, Role, Species, Subject, User
from adoptme.store import new_id, utcnow
from adoptme.users import MAX_DOCUMENTS, UserService, document_requirements


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "adoptme.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def users(database: Database) -> UserService:
    return UserService(database)


def _run(func, *args, **kwargs):
    return anyio.run(functools.partial(func, *args, **kwargs))


def _register(users: UserService, email: str, role: Role = Role.USER) -> User:
    return _run(users.register, "Test", "User", email, "Password123", role=role)


def _subject(user: User) -> Subject:
    return Subject(id=user.id, role=user.role, email=user.email)


def test_email_is_normalised_and_garbage_rejected(users: UserService) -> None:
    juan = _run(users.register, "Juan", "Perez", "  Juan@Test.COM ", "Password123")
    assert juan.email == "juan@test.com"

    for value in ("", "no-at-sign", "a@b", None, 42):
        with pytest.raises(ValidationError) as excinfo:
            _run(users.update, _subject(juan), juan.id, {"email": value})
        assert excinfo.value.fields == ("email",)
        with pytest.raises(ValidationError) as excinfo:
            _run(users.register, "Ana", "Lopez", value, "Password123")
        assert excinfo.value.fields == ("email",)


def test_register_trims_names_but_not_passwords(users: UserService) -> None:
    user = _run(users.register, "  Ana ", "Lopez", "ana@test.com", "  spaced pw  ")

    assert user.first_name == "Ana"
    assert _run(users.authenticate, "ana@test.com", "  spaced pw  ").id == user.id
    with pytest.raises(UnauthenticatedError):
        _run(users.authenticate, "ana@test.com", "spaced pw")

    with pytest.raises(ValidationError) as excinfo:
        _run(users.register, "   ", "Lopez", "otra@test.com", "Password123")
    assert excinfo.value.fields == ("first_name",)


def test_register_hashes_password(users: UserService) -> None:
    user = _register(users, "juan@test.com")

    assert user.password_hash
    assert "Password123" not in user.password_hash
    assert user.role is Role.USER


def test_authenticate_resets_failed_attempts(users: UserService, database: Database) -> None:
    user = _register(users, "juan@test.com")

    with pytest.raises(UnauthenticatedError):
        _run(users.authenticate, "juan@test.com", "nope-nope")
    with pytest.raises(UnauthenticatedError):
        _run(users.authenticate, "juan@test.com", "nope-nope")
    assert database.users.find_by_id(user.id).failed_login_attempts == 2

    signed_in = _run(users.authenticate, "JUAN@test.com", "Password123")

    assert signed_in.id == user.id
    assert signed_in.failed_login_attempts == 0
    assert signed_in.last_connection is not None


def test_profile_access_is_admin_or_self(users: UserService) -> None:
    juan = _register(users, "juan@test.com")
    ana = _register(users, "ana@test.com")
    admin = _register(users, "admin@test.com", Role.ADMIN)

    assert _run(users.get, _subject(juan), juan.id).email == "juan@test.com"
    assert _run(users.get, _subject(admin), juan.id).id == juan.id
    with pytest.raises(ForbiddenError):
        _run(users.get, _subject(ana), juan.id)
    with pytest.raises(InvalidIdError):
        _run(users.get, _subject(admin), "123")
    with pytest.raises(NotFoundError):
        _run(users.get, _subject(admin), new_id())


def test_listing_users_is_admin_only(users: UserService) -> None:
    juan = _register(users, "juan@test.com")
    admin = _register(users, "admin@test.com", Role.ADMIN)
    _register(users, "vip@test.com", Role.PREMIUM)

    with pytest.raises(ForbiddenError):
        _run(users.list_users, _subject(juan))

    page = _run(users.list_users, _subject(admin), role="premium")
    assert page.total == 1
    assert page.results[0].email == "vip@test.com"

    with pytest.raises(ValidationError):
        _run(users.list_users, _subject(admin), role="superuser")


def test_update_profile_and_role_changes(users: UserService) -> None:
    juan = _register(users, "juan@test.com")
    ana = _register(users, "ana@test.com")
    admin = _register(users, "admin@test.com", Role.ADMIN)

    renamed = _run(users.update, _subject(juan), juan.id, {"first_name": "  Juanito "})
    assert renamed.first_name == "Juanito"

    with pytest.raises(ForbiddenError):
        _run(users.update, _subject(juan), juan.id, {"role": "admin"})
    with pytest.raises(ForbiddenError):
        _run(users.update, _subject(ana), juan.id, {"last_name": "Otro"})
    with pytest.raises(ValidationError) as excinfo:
        _run(users.update, _subject(juan), juan.id, {"password_hash": "x"})
    assert excinfo.value.fields == ("password_hash",)
    with pytest.raises(ValidationError) as excinfo:
        _run(users.update, _subject(juan), juan.id, {"email": "ana@test.com"})
    assert excinfo.value.fields == ("email",)

    promoted = _run(users.update, _subject(admin), juan.id, {"role": "premium"})
    assert promoted.role is Role.PREMIUM


def test_delete_refuses_users_with_live_adoptions(users: UserService, database: Database) -> None:
    juan = _register(users, "juan@test.com")
    idle = _register(users, "idle@test.com")
    admin = _register(users, "admin@test.com", Role.ADMIN)
    now = utcnow()
    pet = database.pets.insert(
        Pet(id=new_id(), name="Firulais", specie=Species.DOG, created_at=now, updated_at=now)
    )
    adoption = _run(AdoptionService(database).create_request, _subject(juan), juan.id, pet.id)
    assert adoption.status is AdoptionStatus.PENDING

    with pytest.raises(ForbiddenError):
        _run(users.delete, _subject(juan), idle.id)
    with pytest.raises(ValidationError):
        _run(users.delete, _subject(admin), juan.id)

    deleted = _run(users.delete, _subject(admin), idle.id)
    assert deleted.id == idle.id
    assert database.users.find_by_id(idle.id) is None


def test_documents_are_capped(users: UserService) -> None:
    juan = _register(users, "juan@test.com")
    ana = _register(users, "ana@test.com")

    for index in range(MAX_DOCUMENTS):
        _run(users.add_document, _subject(juan), juan.id, f"doc-{index}", f"/uploads/{index}.pdf")

    with pytest.raises(ValidationError) as excinfo:
        _run(users.add_document, _subject(juan), juan.id, "extra", "/uploads/extra.pdf")
    assert excinfo.value.fields == ("documents",)

    documents = _run(users.documents, _subject(juan), juan.id)
    assert len(documents) == MAX_DOCUMENTS
    assert documents[0].name == "doc-0"

    with pytest.raises(ForbiddenError):
        _run(users.documents, _subject(ana), juan.id)


def test_single_document_read_and_delete(users: UserService) -> None:
    juan = _register(users, "juan@test.com")
    ana = _register(users, "ana@test.com")
    admin = _register(users, "admin@test.com", Role.ADMIN)
    _run(users.add_document, _subject(juan), juan.id, "identificacion.pdf", "/uploads/id.pdf")
    _run(users.add_document, _subject(juan), juan.id, "recibo.pdf", "/uploads/recibo.pdf")
    first, second = _run(users.documents, _subject(juan), juan.id)

    owner, found = _run(users.document, _subject(juan), juan.id, str(first.id))
    assert owner.id == juan.id
    assert found == first

    with pytest.raises(ForbiddenError):
        _run(users.document, _subject(ana), juan.id, str(first.id))
    with pytest.raises(InvalidIdError):
        _run(users.document, _subject(juan), juan.id, "abc")
    with pytest.raises(NotFoundError):
        _run(users.document, _subject(juan), juan.id, "999999")
    with pytest.raises(NotFoundError):
        _run(users.document, _subject(admin), new_id(), str(first.id))

    with pytest.raises(ForbiddenError):
        _run(users.delete_document, _subject(ana), juan.id, str(first.id))
    deleted, remaining = _run(users.delete_document, _subject(admin), juan.id, str(first.id))
    assert deleted == first
    assert remaining == (second,)
    with pytest.raises(NotFoundError):
        _run(users.delete_document, _subject(juan), juan.id, str(first.id))


def test_document_kind_ignores_case_and_extension() -> None:
    now = utcnow()
    names = ("Identificacion.PDF", "comprobante_domicilio.tar.gz", "carta_motivacion", ".hidden")

    assert [Document(name=name, reference="/x", uploaded_at=now).kind for name in names] == [
        "identificacion",
        "comprobante_domicilio.tar",
        "carta_motivacion",
        ".hidden",
    ]


def test_required_document_check(users: UserService) -> None:
    juan = _register(users, "juan@test.com")
    ana = _register(users, "ana@test.com")

    _, empty = _run(users.check_documents, _subject(juan), juan.id)
    assert empty["basic"].missing == ("identificacion", "comprobante_domicilio")
    assert not empty["premium"].complete

    for name in ("identificacion.pdf", "COMPROBANTE_DOMICILIO.jpg", "comprobante_ingresos.pdf"):
        _run(users.add_document, _subject(juan), juan.id, name, f"/uploads/{name}")

    user, requirements = _run(users.check_documents, _subject(juan), juan.id)
    assert requirements == document_requirements(user.documents)
    assert requirements["basic"].complete
    assert requirements["premium"].complete
    assert requirements["adoption"].missing == ("carta_motivacion",)
    assert requirements["adoption"].uploaded_count == 2

    with pytest.raises(ForbiddenError):
        _run(users.check_documents, _subject(ana), juan.id)
