from typing import Generator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from config import AppSettings
from db.key_value import MemoryStorage
from db.models import Base
from domain.currency import CurrencyRegistry, default_registry
from services.context import AppContext, build_context
from services.rate_sources import StaticRatesSource
from services.rate_store import RateStore

engine: Engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
session_factory = sessionmaker(engine)


@pytest.fixture(scope="function")
def test_session() -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture(scope="function", autouse=True)
def reset_db() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture(scope="function")
def registry() -> CurrencyRegistry:
    return default_registry()


@pytest.fixture(scope="function")
def store(registry: CurrencyRegistry) -> RateStore:
    return RateStore(registry=registry)


@pytest.fixture(scope="function")
def settings() -> AppSettings:
    return AppSettings(_env_file=None, storage_backend="memory", rates_source="static", static_dir="missing-static")


@pytest.fixture(scope="function")
def context(settings: AppSettings, storage: MemoryStorage) -> AppContext:
    return build_context(settings, storage=storage, source=StaticRatesSource())
