"""
Consolidation configuration.

Public entrypoint: ``get_statement_templates()`` returns every statement
template keyed by id.  Templates live as YAML under ``sets/statements``.
"""

from __future__ import annotations

from pathlib import Path

from consolidation_config.loader import compute_checksum, load_statement_template
from consolidation_config.schema import (
    ComputedLineDef,
    FormulaTerm,
    MarginLineDef,
    NameReclassRule,
    SectionDef,
    StatementTemplate,
)
from consolidation_kernel.exceptions import TemplateError
from consolidation_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "statements"


def get_statement_templates(config_dir: Path | None = None) -> dict[str, StatementTemplate]:
    """Load every ``*.yaml`` template in ``config_dir`` (default: the packaged set).

    Raises:
        FileNotFoundError: If the directory does not exist.
        TemplateError: If a template is invalid or two files share an id.
    """
    templates_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    if not templates_dir.is_dir():
        raise FileNotFoundError(f"Statement template directory not found: {templates_dir}")

    templates: dict[str, StatementTemplate] = {}
    for path in sorted(templates_dir.glob("*.yaml")):
        template = load_statement_template(path)
        if template.id in templates:
            raise TemplateError(template.id, f"defined twice (second copy in {path.name})")
        templates[template.id] = template

    _logger.info(
        "statement_templates_loaded",
        extra={
            "template_ids": sorted(templates),
            "checksum": compute_checksum({k: t.checksum for k, t in templates.items()}),
            "config_dir": str(templates_dir),
        },
    )
    return templates


__all__ = [
    "ComputedLineDef",
    "FormulaTerm",
    "MarginLineDef",
    "NameReclassRule",
    "SectionDef",
    "StatementTemplate",
    "get_statement_templates",
]
