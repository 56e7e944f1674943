"""
Known investment firms.

Reference data consulted read-only by the categorizer. The table is seeded
from DEFAULT_KNOWN_FIRMS and can be extended by operators.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from intelligence.models import FirmType, KnownFirm
from intelligence.normalizers import normalize_company_name

DEFAULT_KNOWN_FIRMS: list[tuple[str, FirmType, list[str]]] = [
    ("Sequoia Capital", FirmType.VC, ["Sequoia"]),
    ("Andreessen Horowitz", FirmType.VC, ["a16z", "Andreessen"]),
    ("Accel", FirmType.VC, ["Accel Partners"]),
    ("Benchmark", FirmType.VC, ["Benchmark Capital"]),
    ("Greylock Partners", FirmType.VC, ["Greylock"]),
    ("Kleiner Perkins", FirmType.VC, ["KPCB", "Kleiner"]),
    ("Lightspeed Venture Partners", FirmType.VC, ["Lightspeed"]),
    ("General Catalyst", FirmType.VC, ["GC"]),
    ("Index Ventures", FirmType.VC, ["Index"]),
    ("Founders Fund", FirmType.VC, []),
    ("Y Combinator", FirmType.ACCELERATOR, ["YC"]),
    ("Techstars", FirmType.ACCELERATOR, []),
]

INSTITUTIONAL_TYPES = frozenset({FirmType.VC, FirmType.PE})


@dataclass(frozen=True)
class FirmRef:
    """Detached copy of a known firm, safe to share with async workers."""
    name: str
    firm_type: FirmType
    aliases: tuple[str, ...] = ()

    @property
    def is_institutional(self) -> bool:
        return self.firm_type in INSTITUTIONAL_TYPES


class KnownFirmIndex:
    """
    Lookup of company names against the known-firm list.

    A company matches a firm when its normalized name equals the firm's name
    or one of its aliases. A longer company name also matches when it starts
    with the whole tokens of a multi-word firm name or alias
    ("Sequoia Capital China" -> Sequoia Capital). Single-word names match
    only exactly, so "Accel" never claims "Accelerate Diagnostics" and
    "Benchmark" never claims "Benchmark Electronics".
    """

    def __init__(self, firms: Iterable[FirmRef]):
        self.firms = list(firms)
        self._keys: dict[tuple[str, ...], FirmRef] = {}
        for firm in self.firms:
            for label in (firm.name, *firm.aliases):
                tokens = tuple(normalize_company_name(label).split())
                if tokens:
                    self._keys.setdefault(tokens, firm)

    @classmethod
    def from_rows(cls, rows: Iterable[KnownFirm]) -> "KnownFirmIndex":
        return cls(
            FirmRef(name=row.name, firm_type=row.firm_type, aliases=tuple(row.aliases or ()))
            for row in rows
        )

    @classmethod
    def default(cls) -> "KnownFirmIndex":
        return cls(
            FirmRef(name=name, firm_type=firm_type, aliases=tuple(aliases))
            for name, firm_type, aliases in DEFAULT_KNOWN_FIRMS
        )

    def __len__(self) -> int:
        return len(self.firms)

    def match(self, company: Optional[str]) -> Optional[FirmRef]:
        tokens = tuple(normalize_company_name(company).split())
        if not tokens:
            return None
        if tokens in self._keys:
            return self._keys[tokens]
        for length in range(len(tokens) - 1, 1, -1):
            firm = self._keys.get(tokens[:length])
            if firm is not None:
                return firm
        return None
