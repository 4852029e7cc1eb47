"""
Tests for registration and login.
"""
from typing import Any, Dict
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import AutoReconnect

from database import USERS, Store
from security import PasswordHasher


class TestRegister:

    def test_register_stores_hashed_password(
        self, client: TestClient, store: Store, hasher: PasswordHasher, farmer_data: Dict[str, Any]
    ) -> None:
        response = client.post("/register", json=farmer_data)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "User registered successfully"}
        user = store[USERS].find_one({"email": farmer_data["email"]})
        assert user["name"] == "Ravi Kumar"
        assert user["role"] == "farmer"
        assert user["password"] != farmer_data["password"]
        assert hasher.verify(farmer_data["password"], user["password"])

    @pytest.mark.parametrize("field", ["name", "email", "phone", "password", "role"])
    def test_register_missing_field(
        self, client: TestClient, store: Store, farmer_data: Dict[str, Any], field: str
    ) -> None:
        farmer_data[field] = ""
        response = client.post("/register", json=farmer_data)

        assert response.status_code == 400
        assert response.json() == {"error": "All fields are required"}
        assert store[USERS].count_documents({}) == 0

    @pytest.mark.parametrize("field", ["name", "email", "phone", "password", "role"])
    def test_register_absent_field(
        self, client: TestClient, store: Store, farmer_data: Dict[str, Any], field: str
    ) -> None:
        del farmer_data[field]
        response = client.post("/register", json=farmer_data)

        assert response.json() == {"error": "All fields are required"}
        assert store[USERS].count_documents({}) == 0

    def test_register_rejects_admin_role(self, client: TestClient, farmer_data: Dict[str, Any]) -> None:
        farmer_data["role"] = "admin"
        response = client.post("/register", json=farmer_data)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid value for role"}

    def test_register_duplicate_email(
        self, client: TestClient, store: Store, farmer_data: Dict[str, Any]
    ) -> None:
        assert client.post("/register", json=farmer_data).status_code == 200

        farmer_data["name"] = "Someone Else"
        farmer_data["role"] = "buyer"
        response = client.post("/register", json=farmer_data)

        assert response.status_code == 409
        assert response.json() == {"error": "Email already registered"}
        assert store[USERS].count_documents({"email": farmer_data["email"]}) == 1

    def test_register_store_failure(
        self, client: TestClient, store: Store, farmer_data: Dict[str, Any]
    ) -> None:
        with patch.object(store, "create_document", side_effect=AutoReconnect("lost")):
            response = client.post("/register", json=farmer_data)

        assert response.status_code == 500
        assert response.json() == {"error": "Could not register user"}



class TestLogin:

    def test_admin_login(self, client: TestClient) -> None:
        response = client.post("/login", json={"email": "admin", "password": "1234", "role": "admin"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "role": "admin", "name": "Admin"}

    def test_admin_login_ignores_store(
        self, client: TestClient, store: Store, farmer_data: Dict[str, Any]
    ) -> None:
        client.post("/register", json=farmer_data)
        response = client.post("/login", json={"email": "admin", "password": "1234", "role": "admin"})

        assert response.json()["role"] == "admin"

    @pytest.mark.parametrize(
        "email,password",
        [("admin", "12345"), ("root", "1234"), ("ravi@example.com", "s3cret")],
    )
    def test_admin_login_rejected(self, client: TestClient, email: str, password: str) -> None:
        response = client.post("/login", json={"email": email, "password": password, "role": "admin"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid admin credentials"}

    def test_admin_login_without_configured_hash(self, client: TestClient) -> None:
        client.app.state.settings.admin_password_hash = None
        response = client.post("/login", json={"email": "admin", "password": "1234", "role": "admin"})

        assert response.json() == {"error": "Invalid admin credentials"}

    def test_login_success(self, client: TestClient, farmer_data: Dict[str, Any]) -> None:
        client.post("/register", json=farmer_data)
        response = client.post(
            "/login", json={"email": "ravi@example.com", "password": "s3cret", "role": "farmer"}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "role": "farmer", "name": "Ravi Kumar"}

    def test_login_wrong_password(self, client: TestClient, farmer_data: Dict[str, Any]) -> None:
        client.post("/register", json=farmer_data)
        response = client.post(
            "/login", json={"email": "ravi@example.com", "password": "nope", "role": "farmer"}
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Wrong password"}

    def test_login_unknown_user(self, client: TestClient) -> None:
        response = client.post(
            "/login", json={"email": "ghost@example.com", "password": "x", "role": "buyer"}
        )

        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}

    def test_login_role_mismatch(self, client: TestClient, farmer_data: Dict[str, Any]) -> None:
        client.post("/register", json=farmer_data)
        response = client.post(
            "/login", json={"email": "ravi@example.com", "password": "s3cret", "role": "buyer"}
        )

        assert response.json() == {"error": "User not found"}

    def test_login_missing_field(self, client: TestClient) -> None:
        response = client.post("/login", json={"email": "ravi@example.com", "role": "farmer"})

        assert response.status_code == 400
        assert response.json() == {"error": "All fields are required"}
