"""End-to-end tests for the adoption HTTP API."""

from __future__ import annotations

import tempfile
import unittest
from datetime import timedelta
from pathlib import Path
from typing import Dict, List

import anyio
import httpx
from fastapi.testclient import TestClient

from adoptme.config import Settings
from adoptme.database import Database
from adoptme.models import Role
from adoptme.service import create_app
from adoptme.store import new_id
from adoptme.users import UserService

SECRET = "test-signing-secret-with-plenty-of-bytes"


class AdoptionAPITests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tempdir.name) / "adoptme.sqlite3"
        self.database = Database(db_path)
        self.settings = Settings(
            database_path=db_path,
            token_secret=SECRET,
            token_ttl=timedelta(minutes=30),
            secure_cookies=False,
        )
        self.app = create_app(database=self.database, settings=self.settings)
        self.client = TestClient(self.app)

        users = UserService(self.database)
        anyio.run(
            lambda: users.register("Ada", "Admin", "admin@test.com", "AdminPass123", role=Role.ADMIN)
        )
        self.admin_token = self._login("admin@test.com", "AdminPass123")

    def tearDown(self) -> None:
        self.client.close()
        self._tempdir.cleanup()

    def _login(self, email: str, password: str) -> str:
        response = self.client.post("/sessions/login", json={"email": email, "password": password})
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()["data"]["token"]

    def _register(self, first_name: str, email: str) -> tuple[str, str]:
        response = self.client.post(
            "/sessions/register",
            json={
                "first_name": first_name,
                "last_name": "Tester",
                "email": email,
                "password": "Password123",
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        data = response.json()["data"]
        return data["user"]["id"], data["token"]

    @staticmethod
    def _auth(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def _create_pet(self, name: str = "Firulais") -> str:
        response = self.client.post(
            "/pets",
            json={"name": name, "specie": "perro", "breed": "Mestizo"},
            headers=self._auth(self.admin_token),
        )
        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()["data"]
        self.assertFalse(body["adopted"])
        self.assertEqual(body["status"], "available")
        return body["id"]

    def _request_adoption(self, user_id: str, token: str, pet_id: str, **body) -> httpx.Response:
        return self.client.post(
            f"/adoptions/user/{user_id}/pet/{pet_id}",
            json=body or None,
            headers=self._auth(token),
        )

    def test_happy_path_approval_assigns_ownership(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        pet_id = self._create_pet()

        created = self._request_adoption(juan_id, juan_token, pet_id)
        self.assertEqual(created.status_code, 201, created.text)
        payload = created.json()
        self.assertEqual(payload["status"], "success")
        self.assertEqual(payload["data"]["status"], "pending")
        adoption_id = payload["data"]["id"]

        approved = self.client.put(
            f"/adoptions/{adoption_id}",
            json={"status": "approved"},
            headers=self._auth(self.admin_token),
        )
        self.assertEqual(approved.status_code, 200, approved.text)
        self.assertEqual(approved.json()["data"]["status"], "approved")

        pet = self.client.get(f"/pets/{pet_id}", headers=self._auth(juan_token)).json()["data"]
        self.assertTrue(pet["adopted"])
        self.assertEqual(pet["owner"], juan_id)

        user = self.client.get(f"/users/{juan_id}", headers=self._auth(juan_token)).json()["data"]
        self.assertIn(pet_id, user["pets"])

        events = self.client.get(
            f"/adoptions/{adoption_id}/events", headers=self._auth(juan_token)
        ).json()["data"]
        self.assertEqual([event["to"] for event in events], ["pending", "approved"])

    def test_concurrent_creates_conflict(self) -> None:
        pet_id = self._create_pet()
        applicants = [self._register(f"User{index}", f"user{index}@test.com") for index in range(4)]
        statuses: List[int] = []

        async def scenario() -> None:
            transport = httpx.ASGITransport(app=self.app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:

                async def attempt(user_id: str, token: str) -> None:
                    response = await client.post(
                        f"/adoptions/user/{user_id}/pet/{pet_id}", headers=self._auth(token)
                    )
                    statuses.append(response.status_code)

                async with anyio.create_task_group() as group:
                    for user_id, token in applicants:
                        group.start_soon(attempt, user_id, token)

        anyio.run(scenario)

        self.assertEqual(statuses.count(201), 1)
        self.assertEqual(statuses.count(409), len(applicants) - 1)

    def test_sequential_second_create_is_in_flight_conflict(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        ana_id, ana_token = self._register("Ana", "ana@test.com")
        pet_id = self._create_pet()

        self.assertEqual(self._request_adoption(juan_id, juan_token, pet_id).status_code, 201)
        conflict = self._request_adoption(ana_id, ana_token, pet_id)

        self.assertEqual(conflict.status_code, 409)
        self.assertEqual(conflict.json()["code"], "CONFLICT_IN_FLIGHT")

    def test_adopted_pet_cannot_be_requested(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        pet_id = self._create_pet()
        self.database.pets.patch(pet_id, {"adopted": True})

        response = self._request_adoption(juan_id, juan_token, pet_id)

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["status"], "error")
        self.assertEqual(body["code"], "PET_ALREADY_ADOPTED")

    def test_owner_cannot_approve(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        pet_id = self._create_pet()
        adoption_id = self._request_adoption(juan_id, juan_token, pet_id).json()["data"]["id"]

        response = self.client.put(
            f"/adoptions/{adoption_id}",
            json={"status": "approved"},
            headers=self._auth(juan_token),
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "FORBIDDEN")

        current = self.client.get(f"/adoptions/{adoption_id}", headers=self._auth(juan_token))
        self.assertEqual(current.json()["data"]["status"], "pending")

    def test_delete_only_in_safe_states(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        approved_id = self._request_adoption(juan_id, juan_token, self._create_pet()).json()["data"]["id"]
        pending_id = self._request_adoption(
            juan_id, juan_token, self._create_pet("Michi")
        ).json()["data"]["id"]
        self.client.post(f"/adoptions/{approved_id}/approve", headers=self._auth(self.admin_token))

        refused = self.client.delete(f"/adoptions/{approved_id}", headers=self._auth(self.admin_token))
        self.assertEqual(refused.status_code, 400)
        self.assertIn("approved", refused.json()["error"])

        accepted = self.client.delete(f"/adoptions/{pending_id}", headers=self._auth(self.admin_token))
        self.assertEqual(accepted.status_code, 200, accepted.text)

        missing = self.client.get(f"/adoptions/{pending_id}", headers=self._auth(self.admin_token))
        self.assertEqual(missing.status_code, 404)

    def test_cross_user_listing_is_refused(self) -> None:
        _, ana_token = self._register("Ana", "ana@test.com")
        bob_id, _ = self._register("Bob", "bob@test.com")

        refused = self.client.get(f"/adoptions/user/{bob_id}", headers=self._auth(ana_token))
        self.assertEqual(refused.status_code, 403)

        allowed = self.client.get(f"/adoptions/user/{bob_id}", headers=self._auth(self.admin_token))
        self.assertEqual(allowed.status_code, 200, allowed.text)
        body = allowed.json()
        self.assertEqual(body["data"], [])
        self.assertEqual(body["pagination"], {"total": 0, "page": 1, "limit": 10, "pages": 0})

    def test_boundary_inputs(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        pet_id = self._create_pet()

        invalid_id = self.client.get("/adoptions/not-an-id", headers=self._auth(juan_token))
        self.assertEqual(invalid_id.status_code, 400)
        self.assertEqual(invalid_id.json()["code"], "INVALID_ID")

        long_notes = self._request_adoption(juan_id, juan_token, pet_id, notes="x" * 501)
        self.assertEqual(long_notes.status_code, 400)
        self.assertEqual(long_notes.json()["code"], "VALIDATION")
        self.assertEqual(long_notes.json()["fields"], ["notes"])

        negative_fee = self._request_adoption(juan_id, juan_token, pet_id, adoptionFee=-5)
        self.assertEqual(negative_fee.status_code, 400)
        self.assertEqual(negative_fee.json()["fields"], ["adoptionFee"])

        unknown = self._request_adoption(juan_id, juan_token, pet_id, owner=juan_id)
        self.assertEqual(unknown.status_code, 400)
        self.assertEqual(unknown.json()["fields"], ["owner"])

        adoption_id = self._request_adoption(juan_id, juan_token, pet_id).json()["data"]["id"]
        unknown_put = self.client.put(
            f"/adoptions/{adoption_id}",
            json={"notes": "ok", "pet": new_id()},
            headers=self._auth(juan_token),
        )
        self.assertEqual(unknown_put.status_code, 400)
        self.assertEqual(unknown_put.json()["fields"], ["pet"])

    def test_fee_and_notes_are_parsed_alike_on_create_and_update(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        pet_id = self._create_pet()

        created = self._request_adoption(juan_id, juan_token, pet_id, adoptionFee="10", notes="  ")
        self.assertEqual(created.status_code, 201, created.text)
        self.assertEqual(created.json()["data"]["adoptionFee"], 10.0)
        self.assertIsNone(created.json()["data"]["notes"])
        adoption_id = created.json()["data"]["id"]

        priced = self.client.put(
            f"/adoptions/{adoption_id}",
            json={"adoptionFee": "12.5"},
            headers=self._auth(self.admin_token),
        )
        self.assertEqual(priced.status_code, 200, priced.text)
        self.assertEqual(priced.json()["data"]["adoptionFee"], 12.5)

        noted = self.client.put(
            f"/adoptions/{adoption_id}", json={"notes": "Tengo patio"}, headers=self._auth(juan_token)
        )
        self.assertEqual(noted.json()["data"]["notes"], "Tengo patio")
        cleared = self.client.put(
            f"/adoptions/{adoption_id}", json={"notes": "   "}, headers=self._auth(juan_token)
        )
        self.assertEqual(cleared.status_code, 200, cleared.text)
        self.assertIsNone(cleared.json()["data"]["notes"])

        bad_fee = self.client.put(
            f"/adoptions/{adoption_id}",
            json={"adoptionFee": "diez"},
            headers=self._auth(self.admin_token),
        )
        self.assertEqual(bad_fee.status_code, 400)
        self.assertEqual(bad_fee.json()["fields"], ["adoptionFee"])

        empty = self.client.put(
            f"/adoptions/{adoption_id}", json={}, headers=self._auth(self.admin_token)
        )
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.json()["code"], "VALIDATION")

    def test_admin_repair_route(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        pet_id = self._create_pet()
        adoption_id = self._request_adoption(juan_id, juan_token, pet_id).json()["data"]["id"]
        self.client.post(f"/adoptions/{adoption_id}/approve", headers=self._auth(self.admin_token))

        clean = self.client.post(
            f"/adoptions/{adoption_id}/repair", headers=self._auth(self.admin_token)
        )
        self.assertEqual(clean.status_code, 200, clean.text)
        self.assertFalse(clean.json()["data"]["repaired"])

        self.database.pets.patch(pet_id, {"adopted": False, "owner_id": None})
        refused = self.client.post(f"/adoptions/{adoption_id}/repair", headers=self._auth(juan_token))
        self.assertEqual(refused.status_code, 403)

        repaired = self.client.post(
            f"/adoptions/{adoption_id}/repair", headers=self._auth(self.admin_token)
        )
        self.assertTrue(repaired.json()["data"]["repaired"])
        self.assertEqual(repaired.json()["data"]["adoption"]["status"], "approved")
        pet = self.database.pets.find_by_id(pet_id)
        self.assertTrue(pet.adopted)
        self.assertEqual(pet.owner_id, juan_id)

    def test_authentication_is_required(self) -> None:
        response = self.client.get("/adoptions")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHENTICATED")

        garbage = self.client.get("/adoptions", headers=self._auth("not-a-token"))
        self.assertEqual(garbage.status_code, 401)

    def test_cookie_session_and_listing(self) -> None:
        juan_id, _ = self._register("Juan", "juan@test.com")
        self.client.cookies.clear()
        login = self.client.post(
            "/sessions/login", json={"email": "juan@test.com", "password": "Password123"}
        )
        self.assertIn("adoptme_token", login.cookies)

        pet_id = self._create_pet()
        created = self.client.post(f"/adoptions/user/{juan_id}/pet/{pet_id}")
        self.assertEqual(created.status_code, 201, created.text)

        mine = self.client.get("/adoptions/mine")
        self.assertEqual(mine.status_code, 200)
        self.assertEqual(mine.json()["pagination"]["total"], 1)

        listing = self.client.get("/adoptions", params={"status": "pending", "limit": 5})
        self.assertEqual(listing.json()["pagination"]["limit"], 5)
        self.assertEqual(len(listing.json()["data"]), 1)

        too_large = self.client.get("/adoptions", params={"limit": 500})
        self.assertEqual(too_large.status_code, 400)

    def test_explicit_transitions_and_statistics(self) -> None:
        juan_id, juan_token = self._register("Juan", "juan@test.com")
        first = self._request_adoption(juan_id, juan_token, self._create_pet()).json()["data"]["id"]
        second = self._request_adoption(
            juan_id, juan_token, self._create_pet("Michi")
        ).json()["data"]["id"]

        cancelled = self.client.post(f"/adoptions/{first}/cancel", headers=self._auth(juan_token))
        self.assertEqual(cancelled.json()["data"]["status"], "cancelled")

        rejected = self.client.post(
            f"/adoptions/{second}/reject",
            json={"notes": "Sin espacio"},
            headers=self._auth(self.admin_token),
        )
        self.assertEqual(rejected.json()["data"]["status"], "rejected")
        self.assertEqual(rejected.json()["data"]["notes"], "Sin espacio")

        invalid = self.client.post(f"/adoptions/{second}/approve", headers=self._auth(self.admin_token))
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.json()["code"], "INVALID_TRANSITION")

        stats = self.client.get("/adoptions/stats", headers=self._auth(self.admin_token))
        self.assertEqual(stats.json()["data"]["cancelled"], 1)
        self.assertEqual(stats.json()["data"]["rejected"], 1)
        self.assertEqual(
            self.client.get("/adoptions/stats", headers=self._auth(juan_token)).status_code, 403
        )

    def test_request_id_is_echoed(self) -> None:
        response = self.client.get("/healthz", headers={"X-Request-ID": "trace-123"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})
        self.assertEqual(response.headers["X-Request-ID"], "trace-123")

        generated = self.client.get("/healthz")
        self.assertTrue(generated.headers["X-Request-ID"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
