"""Extraction of resale linkage from legacy exchange observations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

IGNORE_RE = re.compile(r"\[REFERENTE\s+A\s+DEVOLU(?:Ç|C)(?:Ã|A)O:.*\]", re.IGNORECASE)
NOTE_NUMBER_RE = re.compile(
    r"(?:CANCELAMENTO/ESTORNO\s+)?DEVOLUCAO\s+NOTA\(S\)\s+FISCAL\(IS\):\s*\d+/(\d+)",
    re.IGNORECASE,
)
NFE_KEY_RE = re.compile(r"\[REFERENTE\s+A\s+TROCA:\s*CHAVE:\s*(\d+)\]", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ObservationLinks:
    new_sale_number: str | None = None
    new_sale_nfe_key: str | None = None


EMPTY = ObservationLinks()


@dataclass(frozen=True, slots=True)
class ObservationRule:
    name: str
    pattern: re.Pattern[str]
    apply: Callable[[ObservationLinks, re.Match[str]], ObservationLinks]
    stop: bool = False


def _ignore(links: ObservationLinks, match: re.Match[str]) -> ObservationLinks:
    return EMPTY


def _note_number(links: ObservationLinks, match: re.Match[str]) -> ObservationLinks:
    return ObservationLinks(match.group(1), links.new_sale_nfe_key)


def _nfe_key(links: ObservationLinks, match: re.Match[str]) -> ObservationLinks:
    return ObservationLinks(links.new_sale_number, match.group(1))


# Evaluated in order; a matching ``stop`` rule ends evaluation.
RULES: tuple[ObservationRule, ...] = (
    ObservationRule("ignore", IGNORE_RE, _ignore, stop=True),
    ObservationRule("note_number", NOTE_NUMBER_RE, _note_number),
    ObservationRule("nfe_key", NFE_KEY_RE, _nfe_key),
)


def parse_observation(text: object, rules: tuple[ObservationRule, ...] = RULES) -> ObservationLinks:
    """Return the resale number and NFE key referenced by an exchange note.

    A plain return (``[REFERENTE A DEVOLUÇÃO: ...]``) links to nothing. Text
    matching no rule yields empty links; this never raises.
    """
    if not isinstance(text, str) or not text.strip():
        return EMPTY
    links = EMPTY
    for rule in rules:
        match = rule.pattern.search(text)
        if match is None:
            continue
        links = rule.apply(links, match)
        if rule.stop:
            break
    return links
