"""NoteRenderer - Jinja2-based consultation note renderer.

Loads templates from the ``template/`` directory and renders an evaluation
result into a markdown-like plain-text note: patient facts, assessment,
decision trace, plan and safety netting.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import jinja2

from otcflow_rules.evaluator import display_value
from otcflow_rules.models.intake import EvaluationResult
from otcflow_rules.models.pack import RulePack

CONSULTATION_NOTE_TEMPLATE = "consultation_note.md.jinja2"


class NoteRenderer:
    """Renders consultation notes for evaluation results.

    Args:
        template_dir: optional override for the template directory.
            Defaults to ``template/`` sibling of this module.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        if template_dir is None:
            template_dir = Path(__file__).parent / "template"
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, **context: Any) -> str:
        """Render a named template with arbitrary context."""
        template = self._env.get_template(template_name)
        return template.render(**context)

    def consultation_note(
        self,
        pack: RulePack,
        patient: Mapping[str, Any],
        result: EvaluationResult,
    ) -> str:
        """Render the note for a normalised patient record and a prepared result."""
        age = patient.get("age")
        pregnant = patient.get("pregnant")
        if pregnant is None:
            pregnancy = "unknown"
        else:
            pregnancy = "pregnant" if pregnant else "not pregnant"

        return self.render(
            CONSULTATION_NOTE_TEMPLATE,
            pack=pack,
            governance=pack.governance(),
            patient=patient,
            age="unknown" if age is None else display_value(age),
            pregnancy=pregnancy,
            complaint=(pack.complaint.label if pack.complaint else "") or "unknown",
            result=result,
        )
