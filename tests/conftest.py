import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def _catalogue_domain(request):
    """Initialize the catalogue domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from catalogue.domain import catalogue

    catalogue.init()
    return catalogue


@pytest.fixture(scope="session")
def _ordering_domain(request):
    """Initialize the ordering domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from ordering.domain import ordering

    ordering.init()
    return ordering


@pytest.fixture
def catalogue_ctx(_catalogue_domain):
    """Push catalogue domain context for a test."""
    ctx = _catalogue_domain.domain_context()
    ctx.push()

    yield _catalogue_domain

    ctx.pop()


@pytest.fixture
def ordering_ctx(_ordering_domain):
    """Push ordering domain context for a test."""
    ctx = _ordering_domain.domain_context()
    ctx.push()

    yield _ordering_domain

    ctx.pop()


@pytest.fixture
def product_records():
    """Raw catalogue records in the shapes the remote catalogue sends them."""
    return [
        {
            "id": 1,
            "name": "Organic Tomatoes",
            "description": "Vine-ripened heirloom tomatoes",
            "price": 45,
            "originalPrice": 60,
            "category": "Vegetables",
            "farmer": {"name": "Green Valley Farm", "verified": True, "location": "Nashik"},
            "rating": 4.5,
            "reviewCount": 120,
            "inStock": True,
            "isOrganic": True,
            "unit": "kg",
            "images": ["/img/tomatoes-1.jpg", "/img/tomatoes-2.jpg"],
        },
        {
            "id": 2,
            "name": "Fresh Spinach",
            "description": "Tender leaves picked this morning",
            "price": 60,
            "category": "Vegetables",
            "farmer": "Sunrise Organics",
            "rating": 4.2,
            "reviews": 80,
            "inStock": True,
            "organic": True,
            "unit": "bunch",
            "image": "/img/spinach.jpg",
        },
        {
            "id": 3,
            "name": "Alphonso Mangoes",
            "description": "Sweet seasonal mangoes",
            "price": 305,
            "originalPrice": 350,
            "category": "Fruits",
            "farmer": {"name": "Konkan Orchards", "verified": True},
            "rating": 4.9,
            "reviewCount": 200,
            "inStock": True,
            "isOrganic": False,
            "unit": "dozen",
            "images": ["/img/mangoes.jpg"],
        },
        {
            "id": 4,
            "name": "Farm Fresh Milk",
            "description": "Full cream milk from grass-fed cows",
            "price": 70,
            "category": "Dairy",
            "farmer": {"name": "Happy Cow Dairy", "verified": False},
            "rating": 4.0,
            "reviewCount": 45,
            "inStock": False,
            "isOrganic": False,
            "unit": "litre",
            "images": [],
        },
    ]
