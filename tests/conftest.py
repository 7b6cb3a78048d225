import pytest
import respx

from catalog_sync.cache.transients import TransientCache
from catalog_sync.catalog.models import SourceAttribute, SourceProduct, SourceVariation, Term
from catalog_sync.catalog.source import InMemoryCatalog
from catalog_sync.config import TargetConfig
from catalog_sync.sync.context import SyncContext
from catalog_sync.sync_logger import LogStore, SyncLogger
from catalog_sync.woo.http_client import RetryClient
from catalog_sync.woo.woocommerce import WooTarget

BASE_URL = "https://target.test"
WC = "/wp-json/wc/v3"
MEDIA = "/wp-json/wp/v2/media"


def wc(path: str) -> str:
    return f"{BASE_URL}{WC}/{path.lstrip('/')}"


MEDIA_URL = f"{BASE_URL}{MEDIA}"


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def log_store():
    return LogStore(max_entries=500)


@pytest.fixture
def ctx(sleeps, log_store):
    return SyncContext(logger=SyncLogger(log_store), transients=TransientCache(), sleep=sleeps)


@pytest.fixture
def config():
    return TargetConfig(
        base_url=BASE_URL,
        consumer_key="ck_test",
        consumer_secret="cs_test",
        username="admin",
        password="app pass",
        exchange_rate=58.5,
        attribute_name_map={"boja": "Boja", "velicina": "Veličina"},
    )


@pytest.fixture
def router():
    with respx.mock(assert_all_called=False) as r:
        yield r


@pytest.fixture
async def woo(router, ctx, config, sleeps):
    http = RetryClient(ctx.logger, sleep=sleeps)
    yield WooTarget(config, http)
    await http.aclose()


@pytest.fixture
def simple_product():
    return SourceProduct(
        id=10,
        name="Leather Wallet",
        sku="",
        regular_price="1170",
        sale_price="",
        description="<p>Hand made</p>",
        stock_status="instock",
        manage_stock=True,
        stock_quantity=4,
        categories=[Term(id=3, name="Wallets", slug="wallets")],
        image_id=501,
        gallery_image_ids=[502],
    )


@pytest.fixture
def variable_catalog():
    product = SourceProduct(
        id=20,
        name="Cotton Shirt",
        sku="SHIRT",
        type="variable",
        attributes=[
            SourceAttribute(name="Boja", taxonomy="pa_boja", options=["Crvena", "Plava", "Zelena"], variation=True),
        ],
        variation_ids=[21, 22, 23],
    )
    variations = [
        SourceVariation(id=21, parent_id=20, sku="SHIRT-R", attributes={"attribute_pa_boja": "crvena"},
                        regular_price="585", stock_quantity=2, manage_stock=True),
        SourceVariation(id=22, parent_id=20, sku="SHIRT-B", attributes={"attribute_pa_boja": "plava"},
                        regular_price="585"),
        SourceVariation(id=23, parent_id=20, sku="SHIRT", attributes={"attribute_pa_boja": "zelena"},
                        regular_price="600", length="10", width="0", height=""),
    ]
    return InMemoryCatalog([product], variations)
