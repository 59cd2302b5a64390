"""Query enhancement with a static banking abbreviation and synonym table.

Enhancement is additive only: the original wording is kept verbatim and
expansions are appended, so a query can only gain recall, never lose the
user's own terms.

Examples
--------
>>> QueryEnhancer().enhance("KYC refresh for PEP clients")
'KYC refresh for PEP clients know your customer politically exposed person'
"""

from __future__ import annotations

import re
from typing import Any

import structlog

logger = structlog.get_logger(logger_name=__name__)

# Abbreviation -> expansion.  Matched as whole words, case-insensitively.
BANKING_ABBREVIATIONS: dict[str, str] = {
    "ACH": "automated clearing house",
    "AML": "anti-money laundering",
    "BSA": "bank secrecy act",
    "CDD": "customer due diligence",
    "CTR": "currency transaction report",
    "EDD": "enhanced due diligence",
    "FX": "foreign exchange",
    "KRI": "key risk indicator",
    "KYC": "know your customer",
    "LCR": "liquidity coverage ratio",
    "NSFR": "net stable funding ratio",
    "OFAC": "office of foreign assets control",
    "PEP": "politically exposed person",
    "RCSA": "risk and control self assessment",
    "RWA": "risk weighted assets",
    "SAR": "suspicious activity report",
    "SLA": "service level agreement",
    "SOP": "standard operating procedure",
    "SWIFT": "society for worldwide interbank financial telecommunication",
}

# Term -> related terms.
BANKING_SYNONYMS: dict[str, list[str]] = {
    "wire": ["wire transfer", "funds transfer"],
    "threshold": ["limit"],
    "limit": ["threshold"],
    "approval": ["authorization", "sign-off"],
    "customer": ["client"],
    "client": ["customer"],
    "onboarding": ["account opening"],
    "sanctions": ["OFAC screening"],
    "escalation": ["escalate"],
}


class QueryEnhancer:
    """Appends abbreviation expansions and synonyms to a query.

    Parameters
    ----------
    abbreviations:
        Extra abbreviations merged over :data:`BANKING_ABBREVIATIONS`.
    synonyms:
        Extra synonym lists merged over :data:`BANKING_SYNONYMS`.
    """

    def __init__(
        self,
        abbreviations: dict[str, str] | None = None,
        synonyms: dict[str, list[str]] | None = None,
    ) -> None:
        self._abbreviations = {
            k.lower(): v for k, v in {**BANKING_ABBREVIATIONS, **(abbreviations or {})}.items()
        }
        self._synonyms = {
            k.lower(): list(v) for k, v in {**BANKING_SYNONYMS, **(synonyms or {})}.items()
        }

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> QueryEnhancer:
        """Build from the ``retrieval`` section of the YAML config."""
        retrieval = config.get("retrieval") or {}
        synonyms = {
            str(k): [str(s) for s in (v if isinstance(v, list) else [v])]
            for k, v in (retrieval.get("synonyms") or {}).items()
        }
        abbreviations = {
            str(k): str(v) for k, v in (retrieval.get("abbreviations") or {}).items()
        }
        return cls(abbreviations=abbreviations, synonyms=synonyms)

    def enhance(self, query: str) -> str:
        """Return *query* with expansions appended; unchanged if none apply."""
        query = query.strip()
        lowered = query.lower()
        additions: list[str] = []

        def _add(term: str) -> None:
            if term.lower() not in lowered and term.lower() not in (a.lower() for a in additions):
                additions.append(term)

        for abbreviation, expansion in self._abbreviations.items():
            if _contains_term(lowered, abbreviation):
                _add(expansion)
            elif _contains_term(lowered, expansion.lower()):
                _add(abbreviation.upper())

        for term, related in self._synonyms.items():
            if _contains_term(lowered, term):
                for synonym in related:
                    _add(synonym)

        if not additions:
            return query

        enhanced = f"{query} {' '.join(additions)}"
        logger.debug("query_enhanced", original=query, additions=additions)
        return enhanced


def _contains_term(text: str, term: str) -> bool:
    return re.search(rf"(?<![\w-]){re.escape(term)}(?![\w-])", text) is not None
