"""
Statement Template Loader (``consolidation_config.loader``).

Responsibility
--------------
Parse statement template YAML files into the frozen types of
``consolidation_config.schema`` and check their internal references.
Runtime callers use ``consolidation_config.get_statement_templates()``.

Invariants enforced
-------------------
* Every parse or reference error raises ``TemplateError`` naming the
  template and the problem; required keys never get silent defaults.
* Line ids are unique within a template.
* Formulas and margins only reference sections and computed lines that
  exist; the EBITDA cutoff names a line of the template.
* ``compute_checksum`` is a deterministic SHA-256 of the parsed data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from consolidation_config.schema import (
    MARGIN_SUFFIX,
    ComputedLineDef,
    FormulaTerm,
    MarginLineDef,
    NameReclassRule,
    SectionDef,
    StatementTemplate,
)
from consolidation_kernel.domain.snapshot import AccountClassification
from consolidation_kernel.exceptions import TemplateError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file. An empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _require(data: dict[str, Any], key: str, template: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise TemplateError(template, f"{where} is missing required key '{key}'")
    return data[key]


def _classification(value: Any, template: str) -> AccountClassification:
    try:
        return AccountClassification(value)
    except ValueError:
        raise TemplateError(template, f"unknown classification {value!r}") from None


def parse_section(data: dict[str, Any], template: str) -> SectionDef:
    section_id = _require(data, "id", template, "section")
    return SectionDef(
        id=section_id,
        title=data.get("title", ""),
        classification=_classification(
            _require(data, "classification", template, f"section {section_id}"), template,
        ),
        account_types=tuple(data.get("account_types", ())),
        catch_all=bool(data.get("catch_all", False)),
    )


def parse_computed_line(data: dict[str, Any], template: str) -> ComputedLineDef:
    line_id = _require(data, "id", template, "computed line")
    where = f"computed line {line_id}"
    terms = []
    for term in _require(data, "formula", template, where):
        sign = int(term.get("sign", 1))
        if sign not in (1, -1):
            raise TemplateError(template, f"{where} has sign {sign}; expected 1 or -1")
        terms.append(FormulaTerm(section_id=_require(term, "section", template, where), sign=sign))
    return ComputedLineDef(
        id=line_id,
        label=_require(data, "label", template, where),
        after_section=_require(data, "after_section", template, where),
        formula=tuple(terms),
        is_grand_total=bool(data.get("is_grand_total", False)),
    )


def parse_margin_line(data: dict[str, Any], template: str) -> MarginLineDef:
    line_id = _require(data, "id", template, "margin line")
    if not line_id.endswith(MARGIN_SUFFIX):
        raise TemplateError(template, f"margin line id {line_id!r} must end with {MARGIN_SUFFIX!r}")
    where = f"margin line {line_id}"
    return MarginLineDef(
        id=line_id,
        label=_require(data, "label", template, where),
        numerator=_require(data, "numerator", template, where),
        denominator_section=_require(data, "denominator_section", template, where),
    )


def parse_name_reclass(data: dict[str, Any], template: str) -> NameReclassRule:
    where = "name reclass rule"
    return NameReclassRule(
        classification=_classification(_require(data, "classification", template, where), template),
        account_type=_require(data, "account_type", template, where),
        target_account_type=_require(data, "target_account_type", template, where),
        patterns=tuple(p.lower() for p in _require(data, "patterns", template, where)),
    )


def _check_references(t: StatementTemplate) -> None:
    section_ids = [s.id for s in t.sections]
    computed_ids = [c.id for c in t.computed_lines]
    margin_ids = [m.id for m in t.margin_lines]

    all_ids = section_ids + [s.total_line_id for s in t.sections] + computed_ids + margin_ids
    seen: set[str] = set()
    for line_id in all_ids:
        if line_id in seen:
            raise TemplateError(t.id, f"duplicate line id {line_id!r}")
        seen.add(line_id)

    catch_all: set[AccountClassification] = set()
    for s in t.sections:
        if s.catch_all:
            if s.classification in catch_all:
                raise TemplateError(
                    t.id, f"more than one catch-all section for {s.classification.value}",
                )
            catch_all.add(s.classification)

    for c in t.computed_lines:
        if c.after_section not in section_ids:
            raise TemplateError(t.id, f"computed line {c.id} follows unknown section {c.after_section!r}")
        for term in c.formula:
            if term.section_id not in section_ids:
                raise TemplateError(t.id, f"computed line {c.id} references unknown section {term.section_id!r}")

    for m in t.margin_lines:
        if m.numerator not in computed_ids:
            raise TemplateError(t.id, f"margin line {m.id} has unknown numerator {m.numerator!r}")
        if m.denominator_section not in section_ids:
            raise TemplateError(
                t.id, f"margin line {m.id} has unknown denominator {m.denominator_section!r}",
            )

    if t.ebitda_cutoff is not None and t.ebitda_cutoff not in seen:
        raise TemplateError(t.id, f"EBITDA cutoff {t.ebitda_cutoff!r} is not a line of the statement")


def parse_statement_template(data: dict[str, Any], source: str = "<dict>") -> StatementTemplate:
    """Parse and check one template dict."""
    template_id = data.get("id") or source
    sections = tuple(parse_section(s, template_id) for s in _require(data, "sections", template_id, "template"))
    if not sections:
        raise TemplateError(template_id, "template has no sections")

    template = StatementTemplate(
        id=_require(data, "id", template_id, "template"),
        title=_require(data, "title", template_id, "template"),
        sections=sections,
        computed_lines=tuple(parse_computed_line(c, template_id) for c in data.get("computed_lines", ())),
        margin_lines=tuple(parse_margin_line(m, template_id) for m in data.get("margin_lines", ())),
        ebitda_cutoff=data.get("ebitda_cutoff"),
        name_reclass_rules=tuple(parse_name_reclass(r, template_id) for r in data.get("name_reclass", ())),
        checksum=compute_checksum(data),
    )
    _check_references(template)
    return template


def load_statement_template(path: Path) -> StatementTemplate:
    return parse_statement_template(load_yaml_file(path), source=path.stem)
