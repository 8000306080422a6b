import pytest


@pytest.fixture
def di_container():
    """Fixture to get the DI container built during app startup."""
    from di_core.containers import container

    return container
