from storefront.common.database import fetch_products
from storefront.seed import SAMPLE_PRODUCTS, seed_catalog


class TestSeedCatalog:
    def test_seeding_twice_adds_nothing_new(self, run):
        async def scenario():
            first = await seed_catalog()
            second = await seed_catalog()
            return first, second, await fetch_products()

        first, second, products = run(scenario())
        assert first == len(SAMPLE_PRODUCTS)
        assert second == 0
        assert len(products) == len(SAMPLE_PRODUCTS)
