import pytest


@pytest.fixture
def cart_request(client, user_token):
    def _cart_request(path, item_id=None):
        payload = {} if item_id is None else {"itemId": item_id}
        return client.post(path, json=payload, headers={"auth-token": user_token})

    return _cart_request


class TestCart:
    def test_new_account_has_empty_cart(self, cart_request):
        cart = cart_request("/getcart").get_json()

        assert len(cart) == 300
        assert set(cart.values()) == {0}

    def test_add_increments_slot(self, cart_request):
        cart_request("/addtocart", 5)
        response = cart_request("/addtocart", 5)

        body = response.get_json()
        assert body["success"] is True
        assert body["cartData"]["5"] == 2
        assert cart_request("/getcart").get_json()["5"] == 2

    def test_remove_never_goes_below_zero(self, cart_request):
        cart_request("/addtocart", 7)

        cart_request("/removefromcart", 7)
        response = cart_request("/removefromcart", 7)

        assert response.status_code == 200
        assert response.get_json()["cartData"]["7"] == 0

    @pytest.mark.parametrize("item_id", [-1, 300, "abc", None])
    def test_invalid_item_id(self, cart_request, item_id):
        response = cart_request("/addtocart", item_id)

        assert response.status_code == 400

    def test_requires_token(self, client):
        response = client.post("/addtocart", json={"itemId": 1})

        assert response.status_code == 401
