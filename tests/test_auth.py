from datetime import timedelta

from autotester import config
from autotester.api.auth.auth import create_access_token
from autotester.utils.auth import decode_token

CREDENTIALS = {"username": "carol", "email": "carol@example.com", "password": "s3cret!"}


def test_register_login_and_me(client, users):
    registered = client.post("/register", json=CREDENTIALS)
    assert registered.status_code == 200
    assert registered.json()["token_type"] == "bearer"

    stored = users.find_one({"username": "carol"})
    assert stored["password"] != CREDENTIALS["password"]
    assert stored["is_admin"] is False

    login = client.post("/login", json={"username": "carol", "password": "s3cret!"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/users/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["username"] == "carol"
    assert me["isAdmin"] is False
    assert me["usage"] == {"usedToday": 0, "dailyLimit": config.DAILY_AI_LIMIT}


def test_duplicate_registration_is_rejected(client):
    client.post("/register", json=CREDENTIALS)
    resp = client.post("/register", json={**CREDENTIALS, "email": "other@example.com"})
    assert resp.status_code == 400


def test_wrong_password_is_rejected(client):
    client.post("/register", json=CREDENTIALS)
    resp = client.post("/login", json={"username": "carol", "password": "nope"})
    assert resp.status_code == 400


def test_token_claims_round_trip():
    token = create_access_token({"sub": "abc", "username": "dave", "is_admin": True})
    user = decode_token(token)
    assert (user.id, user.username, user.is_admin) == ("abc", "dave", True)


def test_expired_or_garbage_tokens_are_unauthorized(client):
    expired = create_access_token({"sub": "abc"}, expires_delta=timedelta(minutes=-5))
    for token in (expired, "garbage"):
        resp = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
