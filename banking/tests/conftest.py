import pytest

from banking.actions import BankingActions
from banking.cards import LocalCardDetailGenerator
from banking.config import FeePolicy, Settings
from banking.store import InMemoryStorage


@pytest.fixture
def settings() -> Settings:
    return Settings(bcrypt_rounds=4, seed_demo_data=False)


@pytest.fixture
def store() -> InMemoryStorage:
    """Demo data: admin1, Campus Store (1000.00), Alice (150.75), Bob (320.00), fee account (0.00)."""
    return InMemoryStorage(seed=True, bcrypt_rounds=4)


@pytest.fixture
def bank(store: InMemoryStorage, settings: Settings) -> BankingActions:
    return BankingActions(store=store, card_generator=LocalCardDetailGenerator(), settings=settings)


@pytest.fixture
def fee_collecting_bank(store: InMemoryStorage) -> BankingActions:
    collecting = Settings(bcrypt_rounds=4, seed_demo_data=False, fee_policy=FeePolicy.COLLECT)
    return BankingActions(store=store, card_generator=LocalCardDetailGenerator(), settings=collecting)
