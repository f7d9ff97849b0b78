import pytest
from pydantic import ValidationError

from errors import NotFoundError
from schemas import MenuItem, SaleRecord, User, pwd_context, shape_of

SALE = {
    "menuItemId": "oreo_milk",
    "itemName": "Oreo",
    "category": "milkCakes",
    "size": "regular",
    "unitPrice": 99,
    "quantity": 2,
}


def test_sale_total_within_tolerance_is_kept() -> None:
    record = SaleRecord(**SALE, totalAmount=198.005)
    assert record.totalAmount == 198.005


def test_sale_total_mismatch_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc:
        SaleRecord(**SALE, totalAmount=150)
    assert exc.value.errors()[0]["loc"] == ("totalAmount",)


@pytest.mark.parametrize("total", [None, 0])
def test_sale_total_is_computed_when_missing_or_zero(total) -> None:
    assert SaleRecord(**SALE, totalAmount=total).totalAmount == 198


def test_menu_item_requires_a_price() -> None:
    with pytest.raises(ValidationError):
        MenuItem(name="Oreo", category="milkCakes", prices={})
    item = MenuItem(name="  Oreo ", category="milkCakes", prices={"regular": 99})
    assert item.name == "Oreo"


def test_menu_item_rejects_unknown_category() -> None:
    with pytest.raises(ValidationError):
        MenuItem(name="Oreo", category="cookies", prices={"regular": 99})


def test_user_password_is_hashed_once() -> None:
    user = User(firstName="Asha", lastName="Rao", email="Asha@Bakery.in", password="secret1")
    assert user.email == "asha@bakery.in"
    assert user.password != "secret1"
    assert pwd_context.verify("secret1", user.password)
    again = User(**user.model_dump())
    assert again.password == user.password


def test_shape_of_unknown_table() -> None:
    with pytest.raises(NotFoundError):
        shape_of("Orders")
