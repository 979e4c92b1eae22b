# local imports
from .client import DocusealClient, DocusealAPIError, get_docuseal_client

__all__ = ["DocusealClient", "DocusealAPIError", "get_docuseal_client"]
