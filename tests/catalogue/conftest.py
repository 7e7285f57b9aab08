import pytest


@pytest.fixture(autouse=True)
def run_around_tests(catalogue_ctx):
    """Push the catalogue domain context around each test."""
    yield


@pytest.fixture
def products(product_records):
    from catalogue.product.ingestion import ingest_products

    return ingest_products(product_records).products
