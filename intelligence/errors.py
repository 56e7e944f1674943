"""
Error taxonomy for the relationship intelligence core.

Only RegistryUnavailableError is allowed to abort a batch. Everything else is
recorded against the item that caused it.
"""

from dataclasses import dataclass


class RelationshipIntelError(Exception):
    """Base class for engine errors."""


class MalformedRecordError(RelationshipIntelError):
    """Raw record is missing the fields needed to create a contact."""


class DuplicateContactError(RelationshipIntelError):
    """An insert collided with an existing identity key (concurrent ingestion)."""


class ScoringOrderError(RelationshipIntelError):
    """Pass 2 proximity scoring was requested before Pass 1 produced a score."""


class EnrichmentError(RelationshipIntelError):
    """Enrichment vendor call failed in a way the caller should know about."""


class RegistryUnavailableError(RelationshipIntelError):
    """The contact registry itself cannot be reached. Fatal for a whole batch."""


@dataclass(frozen=True)
class ClassifierError:
    """
    Failure returned (not raised) by the external classifier.

    kind is one of: timeout, api_error, invalid_response, unavailable.
    """
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"
