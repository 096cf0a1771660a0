import pytest
from jose import jwt

from storefront import auth, models
from storefront.errors import ConfigMissing


def register(client, email="carol@example.com", password="sup3rsecret", name="Carol"):
    return client.post("/api/auth/register", json={"name": name, "email": email, "password": password})


def test_health(client):
    body = client.get("/api/health").json()
    assert body["ok"] is True
    assert body["env"] == "development"
    assert isinstance(body["ts"], int)


def test_auth_ping(client):
    assert client.get("/api/auth/ping").json() == {"ok": True, "message": "Auth routes alive"}


def test_register_returns_token_and_user(client, settings):
    response = register(client, email="Carol@Example.com")

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "carol@example.com"
    assert body["user"]["role"] == "user"
    claims = jwt.decode(body["token"], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert claims["sub"] == body["user"]["id"]


def test_register_never_grants_admin(client):
    response = register(client, email="boss@example.com")
    assert response.json()["user"]["role"] == "user"

    token = response.json()["token"]
    assert client.get("/api/admin/ping", headers={"Authorization": f"Bearer {token}"}).status_code == 403


def test_register_duplicate_email(client):
    register(client)
    response = register(client, email="CAROL@example.com")

    assert response.status_code == 400
    assert response.json()["code"] == "USER_EXISTS"


@pytest.mark.parametrize("body", [
    {"name": "Carol", "email": "not-an-email", "password": "sup3rsecret"},
    {"name": "Carol", "email": "carol@example.com", "password": "short"},
    {"email": "carol@example.com", "password": "sup3rsecret"},
])
def test_register_validation(client, db, body):
    response = client.post("/api/auth/register", json=body)
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert db.query(models.User).count() == 0


def test_register_without_jwt_secret(client, settings):
    settings.JWT_SECRET = None
    response = register(client)
    assert response.status_code == 500
    assert response.json()["code"] == "CONFIG_JWT_SECRET_MISSING"


def test_login(client):
    register(client)
    response = client.post("/api/auth/login", json={"email": "carol@example.com", "password": "sup3rsecret"})

    assert response.status_code == 200
    token = response.json()["token"]
    me = client.get("/api/user/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["user"]["email"] == "carol@example.com"


@pytest.mark.parametrize("email,password", [
    ("carol@example.com", "wrong-password"),
    ("nobody@example.com", "sup3rsecret"),
])
def test_login_invalid_credentials(client, email, password):
    register(client)
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_CREDENTIALS"


def test_password_hashing():
    hashed = auth.get_password_hash("sup3rsecret")
    assert hashed != "sup3rsecret"
    assert auth.verify_password("sup3rsecret", hashed)
    assert not auth.verify_password("other", hashed)


def test_token_requires_secret(settings):
    settings.JWT_SECRET = None
    with pytest.raises(ConfigMissing):
        auth.create_access_token({"sub": "x"}, settings)


def test_token_for_unknown_user(client, headers_for):
    ghost = models.User(id="f" * 32, email="ghost@example.com")
    response = client.get("/api/user/me", headers=headers_for(ghost))
    assert response.status_code == 401


def test_me_requires_token(client):
    assert client.get("/api/user/me").status_code in (401, 403)


def test_me(client, user_headers):
    user = client.get("/api/user/me", headers=user_headers).json()["user"]

    assert user["name"] == "Alice"
    assert user["cart"] == []
    assert user["favorites"] == []
    assert user["settings"]["themeMode"] == "system"


def test_update_profile(client, user_headers):
    response = client.put("/api/user/profile", json={"phone": "9876543210"}, headers=user_headers)

    assert response.status_code == 200
    assert response.json()["user"]["phone"] == "9876543210"
    assert response.json()["user"]["name"] == "Alice"


def test_update_profile_rejects_bad_phone(client, user_headers):
    response = client.put("/api/user/profile", json={"phone": "12ab"}, headers=user_headers)
    assert response.status_code == 400


def test_replace_cart(client, user_headers):
    cart = [{"productId": "p1", "name": "Tomatoes", "price": 40, "quantity": 3}]
    response = client.put("/api/user/cart", json={"cart": cart}, headers=user_headers)

    assert response.status_code == 200
    assert response.json()["cart"][0]["productId"] == "p1"
    assert response.json()["cart"][0]["quantity"] == 3

    client.put("/api/user/cart", json={"cart": []}, headers=user_headers)
    assert client.get("/api/user/me", headers=user_headers).json()["user"]["cart"] == []


def test_replace_favorites(client, user_headers):
    response = client.put("/api/user/favorites", json={"favorites": ["p1", "p2"]}, headers=user_headers)
    assert response.json() == {"ok": True, "favorites": ["p1", "p2"]}


def test_update_address(client, user_headers):
    address = {"name": "Alice", "phone": "9876543210", "city": "Pune", "pincode": "411001"}
    response = client.put("/api/user/address", json={"address": address}, headers=user_headers)

    assert response.status_code == 200
    assert response.json()["address"]["city"] == "Pune"

    response = client.put("/api/user/address", json={"address": {"pincode": "12"}}, headers=user_headers)
    assert response.status_code == 400


def test_update_settings_merges(client, user_headers):
    response = client.put("/api/user/settings", json={"settings": {"themeMode": "dark"}}, headers=user_headers)
    assert response.json()["settings"]["themeMode"] == "dark"

    response = client.put("/api/user/settings", json={"settings": {"accentColor": "#00aa55"}}, headers=user_headers)
    assert response.json()["settings"] == {"themeMode": "dark", "accentColor": "#00aa55"}


def test_update_settings_rejects_unknown_theme(client, user_headers):
    response = client.put("/api/user/settings", json={"settings": {"themeMode": "neon"}}, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["validation"][0]["field"] == "themeMode"
    settings = client.get("/api/user/me", headers=user_headers).json()["user"]["settings"]
    assert settings["themeMode"] == "system"
