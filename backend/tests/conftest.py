from collections.abc import Generator

import pytest

from datahub import DataSource, Hub, HubConfig, ProductTypeEnum, make_provider
from tests.utils.dummy import create_dummy_table, new_dummy


@pytest.fixture()
def sqlite_source(tmp_path) -> DataSource:
    """SQLite file with the Dummy table; every hub connection opens it separately."""
    path = str(tmp_path / "datahub.db")
    create_dummy_table(path)
    return DataSource(name="itest-sqlite", product_type=ProductTypeEnum.SQLITE, database=path)


@pytest.fixture()
def provider(sqlite_source: DataSource):
    return make_provider(sqlite_source)


@pytest.fixture()
def hub_config() -> HubConfig:
    return HubConfig(acquire_timeout=5.0)


@pytest.fixture(params=[False, True], ids=["no_pool", "pool"])
def hub(request, provider, hub_config: HubConfig) -> Generator[Hub, None, None]:
    """Hub over the SQLite file, once without and once with a pool of 10."""
    h = Hub(provider, use_pool=request.param, pool_size=10, config=hub_config)
    yield h
    h.close()


@pytest.fixture()
def seeded_hub(hub: Hub) -> Hub:
    """Hub with User-1 .. User-50 inserted (ref1 = i, ref2 = 0)."""
    for i in range(1, 51):
        hub.insert(new_dummy(i))
    return hub
