import io

import mongomock
import pytest

from storefront import Config, create_app
from storefront.images import check_upload

TEST_SECRET = "test-signing-secret-0123456789"
ADMIN_EMAIL = "admin@shop.test"


class MemoryImageStorage:
    """Image host double that records what was stored and deleted."""

    def __init__(self):
        self.saved = {}
        self.deleted = []

    def save(self, image_file):
        check_upload(image_file, ["jpg", "jpeg", "png"])
        key = f"products/img-{len(self.saved) + 1}"
        self.saved[key] = image_file.read()
        return f"https://images.test/{key}.png", key

    def delete(self, key):
        if key:
            self.deleted.append(key)


@pytest.fixture
def config():
    return Config(
        jwt_secret_key=TEST_SECRET,
        default_admin_email=ADMIN_EMAIL,
        trusted_proxy_hops=0,
        testing=True,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient().storefront


@pytest.fixture
def images():
    return MemoryImageStorage()


@pytest.fixture
def app(config, db, images):
    return create_app(config, db=db, image_storage=images)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_email():
    return ADMIN_EMAIL


@pytest.fixture
def signup(client):
    """Register an account and return its token."""

    def _signup(email, password="p1", username=None):
        response = client.post(
            "/signup",
            json={
                "username": username or email.split("@")[0],
                "email": email,
                "password": password,
            },
        )
        assert response.status_code == 200, response.get_json()
        return response.get_json()["token"]

    return _signup


@pytest.fixture
def add_product(client):
    """Post a product form, with an image unless ``filename`` is None."""

    def _add_product(token, filename="shirt.png", **fields):
        form = {
            "name": "Shirt",
            "description": "Cotton shirt",
            "category": "men",
            "new_price": "25",
            "old_price": "40",
        }
        form.update(fields)
        if filename:
            form["product"] = (io.BytesIO(b"fake image bytes"), filename)
        return client.post(
            "/addproduct",
            data=form,
            headers={"auth-token": token},
            content_type="multipart/form-data",
        )

    return _add_product


@pytest.fixture
def admin_token(signup):
    return signup(ADMIN_EMAIL, password="admin-pass", username="admin")


@pytest.fixture
def user_token(signup):
    return signup("ann@shop.test", username="ann")
