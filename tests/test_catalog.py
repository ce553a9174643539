import pytest

from storefront.admin.service import get_currencies
from storefront.common.database import fetch_product
from storefront.common.errors import InvalidQuantity, NotFound, ValidationError
from storefront.inventory import service


class TestCreateProduct:
    def test_explicit_zero_minimum_is_rejected(self, run):
        with pytest.raises(ValidationError):
            run(service.create_product({"name": "Tea", "price": 2, "minOrderQty": 0}))

    def test_negative_stock_is_rejected(self, run):
        with pytest.raises(InvalidQuantity):
            run(service.create_product({"name": "Tea", "price": 2, "stockQty": -1}))

    def test_defaults(self, run):
        product = run(service.create_product({"name": "Tea", "price": 2}))
        assert product["minOrderQty"] == 1
        assert product["stockQty"] == 0
        assert product["lowStockAlert"] == 10


class TestPatchProduct:
    def test_stock_active_and_price(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=5, price=1.0)
            return await service.patch_product(pid, {"stockQty": 40, "isActive": False, "price": 3.5})

        product = run(scenario())
        assert (product["stockQty"], product["isActive"], product["price"]) == (40, False, 3.5)

    def test_price_only(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=5, price=1.0)
            return await service.patch_product(pid, {"price": 9.0})

        product = run(scenario())
        assert product["price"] == 9.0
        assert product["stockQty"] == 5

    def test_price_per_unit_alias(self, run, factory):
        async def scenario():
            pid = await factory.product(price=1.0)
            return await service.patch_product(pid, {"pricePerUnit": 6.5})

        assert run(scenario())["price"] == 6.5

    def test_negative_stock_changes_nothing(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=5, price=1.0)
            with pytest.raises(InvalidQuantity):
                await service.patch_product(pid, {"stockQty": -2, "price": 4.0})
            return await fetch_product(pid)

        product = run(scenario())
        assert (product["stockQty"], product["price"]) == (5, 1.0)

    def test_requires_a_field(self, run, factory):
        async def scenario():
            pid = await factory.product()
            with pytest.raises(ValidationError):
                await service.patch_product(pid, {"name": "ignored"})

        run(scenario())

    def test_missing_product(self, run):
        with pytest.raises(NotFound):
            run(service.patch_product(999, {"price": 1.0}))


class TestUpdateProduct:
    def test_updates_fields_and_stock(self, run, factory):
        async def scenario():
            pid = await factory.product(name="Old", stock=3)
            return await service.update_product(
                pid, {"name": "New", "slug": "New Name", "minOrderQty": 2, "stockQty": 12, "unitType": "kg"}
            )

        product = run(scenario())
        assert product["name"] == "New"
        assert product["slug"] == "new-name"
        assert product["minOrderQty"] == 2
        assert product["stockQty"] == 12
        assert product["unitType"] == "KG"

    def test_duplicate_slug(self, run, factory):
        async def scenario():
            await factory.product()
            second = await factory.product()
            with pytest.raises(ValidationError):
                await service.update_product(second, {"slug": "product-1"})

        run(scenario())

    def test_unknown_category_leaves_product_untouched(self, run, factory):
        async def scenario():
            pid = await factory.product(name="Keep", stock=3)
            with pytest.raises(NotFound):
                await service.update_product(pid, {"name": "Changed", "categoryId": 77, "stockQty": 9})
            return await fetch_product(pid)

        product = run(scenario())
        assert (product["name"], product["stockQty"]) == ("Keep", 3)

    def test_zero_minimum_is_rejected(self, run, factory):
        async def scenario():
            pid = await factory.product()
            with pytest.raises(ValidationError):
                await service.update_product(pid, {"minOrderQty": 0})

        run(scenario())


class TestDeleteProduct:
    def test_unreferenced_product_is_deleted(self, run, factory):
        async def scenario():
            pid = await factory.product()
            result = await service.delete_product(pid)
            return result, await fetch_product(pid)

        result, product = run(scenario())
        assert result["deleted"] is True
        assert product is None

    def test_ordered_product_is_only_deactivated(self, run, factory):
        async def scenario():
            pid = await factory.product()
            await factory.order([(pid, 1, 10.0)])
            result = await service.delete_product(pid)
            return result, await fetch_product(pid)

        result, product = run(scenario())
        assert result["deactivated"] is True
        assert product["isActive"] is False

    def test_missing(self, run):
        with pytest.raises(NotFound):
            run(service.delete_product(5))


class TestCategories:
    def test_lookup_by_id_or_name_with_products(self, run, factory):
        async def scenario():
            cat = await service.create_category({"displayName": "Hot Drinks"})
            await factory.product(name="Tea", category_id=cat["id"])
            await factory.product(name="Retired", category_id=cat["id"], is_active=False)
            by_id = await service.get_category(str(cat["id"]))
            by_name = await service.get_category("hot-drinks", include_products=True)
            return by_id, by_name

        by_id, by_name = run(scenario())
        assert by_id["productCount"] == 2
        assert "products" not in by_id
        assert [p["name"] for p in by_name["products"]] == ["Tea"]

    def test_update_and_duplicate_name(self, run):
        async def scenario():
            await service.create_category({"displayName": "Fruit"})
            veg = await service.create_category({"displayName": "Veg"})
            updated = await service.update_category(veg["id"], {"displayName": "Vegetables", "sortOrder": 3})
            with pytest.raises(ValidationError):
                await service.update_category(veg["id"], {"name": "fruit"})
            return updated

        updated = run(scenario())
        assert updated["displayName"] == "Vegetables"
        assert updated["sortOrder"] == 3

    def test_delete_deactivates_when_products_remain(self, run, factory):
        async def scenario():
            used = await service.create_category({"displayName": "Used"})
            empty = await service.create_category({"displayName": "Empty"})
            await factory.product(category_id=used["id"])
            first = await service.delete_category(used["id"])
            second = await service.delete_category(empty["id"])
            return first, second, await service.get_categories()

        first, second, remaining = run(scenario())
        assert first["deactivated"] is True
        assert second["deleted"] is True
        assert remaining == []

    def test_missing_category(self, run):
        with pytest.raises(NotFound):
            run(service.get_category("nowhere"))


class TestCurrencies:
    def test_single_shop_currency(self, run):
        assert run(get_currencies()) == [{"label": "INR", "symbol": "₹"}]
