import pytest

from tests.factories import make_db, make_need_catalog


@pytest.fixture
def need_catalog():
    return make_need_catalog()


@pytest.fixture
def db():
    return make_db()
