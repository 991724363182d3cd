from dataclasses import dataclass
from typing import List


@dataclass
class DomainError(Exception):
    detail: str
    title: str = "Domain Error"
    type: str = "https://furfolio.app/problems/domain-error"
    errors: List[dict] | None = None


@dataclass
class InvalidConfiguration(DomainError):
    title: str = "Invalid Configuration"
    type: str = "https://furfolio.app/problems/invalid-configuration"


@dataclass
class InvalidRecord(DomainError):
    title: str = "Invalid Record"
    type: str = "https://furfolio.app/problems/invalid-record"


@dataclass
class AmbiguousGrouping(DomainError):
    title: str = "Ambiguous Client Grouping"
    type: str = "https://furfolio.app/problems/ambiguous-grouping"
