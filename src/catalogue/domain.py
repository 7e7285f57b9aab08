"""Catalogue bounded context: product records and the catalogue query pipeline.

Products arrive from the remote catalogue as loosely-typed records and are
normalized into the Product aggregate at the ingestion boundary. The query
pipeline filters, sorts and paginates that read-only collection client-side.
"""

from protean.domain import Domain

from shared.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
catalogue = Domain(name="catalogue")
