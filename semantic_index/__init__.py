"""
Semantic indexing, retrieval and concierge answers for the business directory.
"""

from .core.config import VERSION

__version__ = VERSION
