"""
Statement template schema.

Financial statement layouts are data: YAML files under
``consolidation_config/sets/statements`` are parsed by the loader into
these frozen types, and the statement builder walks them.

Line ids follow one convention throughout:
  {section_id}-{master_account_id}  account line
  {section_id}-total                section subtotal
  {computed_id}                     computed line (e.g. gross_margin)
  {margin_id}                       margin ratio line, always ending in "_pct"
"""

from __future__ import annotations

from dataclasses import dataclass

from consolidation_kernel.domain.snapshot import AccountClassification

MARGIN_SUFFIX = "_pct"
SECTION_TOTAL_SUFFIX = "-total"


@dataclass(frozen=True)
class SectionDef:
    """
    A block of account lines with a subtotal.

    An account lands here when its classification matches and its account
    type is listed.  A ``catch_all`` section also takes accounts of its
    classification whose type no section lists.
    """

    id: str
    title: str
    classification: AccountClassification
    account_types: tuple[str, ...] = ()
    catch_all: bool = False

    @property
    def total_line_id(self) -> str:
        return f"{self.id}{SECTION_TOTAL_SUFFIX}"


@dataclass(frozen=True)
class FormulaTerm:
    section_id: str
    sign: int = 1


@dataclass(frozen=True)
class ComputedLineDef:
    """Signed sum of section totals, placed after ``after_section``."""

    id: str
    label: str
    after_section: str
    formula: tuple[FormulaTerm, ...]
    is_grand_total: bool = False


@dataclass(frozen=True)
class MarginLineDef:
    """Ratio of a computed line to a section total, placed after the numerator."""

    id: str
    label: str
    numerator: str
    denominator_section: str


@dataclass(frozen=True)
class NameReclassRule:
    """Moves accounts to another account type when their name matches a pattern."""

    classification: AccountClassification
    account_type: str
    target_account_type: str
    patterns: tuple[str, ...]

    def matches(self, classification: AccountClassification, account_type: str, name: str) -> bool:
        if classification != self.classification or account_type != self.account_type:
            return False
        lowered = name.lower()
        return any(p in lowered for p in self.patterns)


@dataclass(frozen=True)
class StatementTemplate:
    """One financial statement layout."""

    id: str
    title: str
    sections: tuple[SectionDef, ...]
    computed_lines: tuple[ComputedLineDef, ...] = ()
    margin_lines: tuple[MarginLineDef, ...] = ()
    ebitda_cutoff: str | None = None
    name_reclass_rules: tuple[NameReclassRule, ...] = ()
    checksum: str = ""

    def section(self, section_id: str) -> SectionDef | None:
        for s in self.sections:
            if s.id == section_id:
                return s
        return None

    def computed_line(self, line_id: str) -> ComputedLineDef | None:
        for c in self.computed_lines:
            if c.id == line_id:
                return c
        return None

    def margin_line(self, line_id: str) -> MarginLineDef | None:
        for m in self.margin_lines:
            if m.id == line_id:
                return m
        return None

    def effective_account_type(
        self, classification: AccountClassification, account_type: str, name: str,
    ) -> str:
        for rule in self.name_reclass_rules:
            if rule.matches(classification, account_type, name):
                return rule.target_account_type
        return account_type

    def section_for(
        self, classification: AccountClassification, account_type: str, name: str,
    ) -> SectionDef | None:
        """Section an account is placed in, or None if the statement doesn't show it."""
        effective = self.effective_account_type(classification, account_type, name)
        fallback: SectionDef | None = None
        for s in self.sections:
            if s.classification != classification:
                continue
            if effective in s.account_types:
                return s
            if s.catch_all and fallback is None:
                fallback = s
        return fallback

    def ordered_line_ids(self) -> list[str]:
        """Section totals, computed and margin ids in presentation order."""
        ids: list[str] = []
        for s in self.sections:
            ids.append(s.total_line_id)
            for c in self.computed_lines:
                if c.after_section == s.id:
                    ids.append(c.id)
                    ids.extend(m.id for m in self.margin_lines if m.numerator == c.id)
        return ids
