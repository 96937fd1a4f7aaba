"""
Canonical business document. Field order is fixed since it feeds the source checksum.
"""

import hashlib

from .schema import BusinessGraph


def build_document(business: BusinessGraph) -> str:
    categories = ", ".join(business.categories)
    features = ", ".join(business.features)

    return "\n".join([
        f"name: {business.name}",
        f"slug: {business.slug}",
        f"description: {business.description}",
        f"address: {business.address}",
        f"province: {business.province_name}",
        f"city: {'n/a' if business.city_name is None else business.city_name}",
        f"categories: {categories or 'n/a'}",
        f"features: {features or 'n/a'}",
        f"phone: {'n/a' if business.phone is None else business.phone}",
        f"whatsapp: {'n/a' if business.whatsapp is None else business.whatsapp}",
    ])


def compute_checksum(document: str) -> str:
    """SHA-256 hex digest of the document text."""
    return hashlib.sha256(document.encode("utf-8")).hexdigest()
