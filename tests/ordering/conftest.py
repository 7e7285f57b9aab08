import pytest


@pytest.fixture(autouse=True)
def run_around_tests(ordering_ctx):
    """Push the ordering domain context around each test."""
    yield


@pytest.fixture
def validator():
    from ordering.cart.coupons import CouponCatalogue, CouponValidator

    return CouponValidator(CouponCatalogue.default())
