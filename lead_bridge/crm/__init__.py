"""CRM-side collaborators: lookups, payload mapping and record creation."""

from .calls import CallRecordingAttacher  # noqa: F401
from .client import CrmClient, CrmProtocol, result_of  # noqa: F401
from .contacts import ContactResolver  # noqa: F401
from .deals import DealCreator  # noqa: F401
from .listings import ListingDirectory  # noqa: F401
from .mapping import FieldMapper, build_title  # noqa: F401
from .owners import OwnerResolver  # noqa: F401

__all__ = [
    "CallRecordingAttacher",
    "ContactResolver",
    "CrmClient",
    "CrmProtocol",
    "DealCreator",
    "FieldMapper",
    "ListingDirectory",
    "OwnerResolver",
    "build_title",
    "result_of",
]
