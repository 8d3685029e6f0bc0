"""PathwayEngine tests against the bundled UTI and sore-throat packs.

Covers each stage of an evaluation:
  - pack resolution and required-field gating (``incomplete``)
  - checks as ordered veto gates
  - advice accumulation and first-match outcomes
  - default / generic fallback results
  - post-processing (de-duplication, governance, consultation note)
  - rule-authoring errors
"""

import pytest

from helpers.loader import SORE_THROAT_PACK, UTI_PACK, sore_throat_intake, uti_intake

from otcflow_rules.engine import PathwayEngine, collect_missing_fields, evaluate_pack, unique_strings
from otcflow_rules.errors import OperatorNotSupportedError, RuleAuthoringError
from otcflow_rules.models import Intake
from otcflow_rules.ruleset import RulePackRegistry, normalize_pack


def _pack(logic, **extra):
    """Minimal pack with no required fields around the given logic."""
    return normalize_pack({
        "meta": {"id": "test_pack", "name": "Test pack", "version": "0.0.1"},
        "complaint": {"id": "test", "label": "Test complaint"},
        "logic": logic,
        **extra,
    })


# =====================================================================
# Pack resolution and missing fields
# =====================================================================


class TestIncomplete:

    def test_no_pack_selected(self, engine):
        result = engine.evaluate(None, uti_intake())
        assert result.outcome == "incomplete"
        assert result.headline == "Select a pathway to begin"

    def test_unknown_pack(self, engine):
        result = engine.evaluate("not_a_pack", uti_intake())
        assert result.outcome == "incomplete"
        assert result.headline == "Pathway not available"

    def test_empty_intake_lists_every_required_field(self, engine):
        result = engine.evaluate(UTI_PACK, {})
        assert result.outcome == "incomplete"
        assert result.headline == "More information required"
        ids = [m.id for m in result.missing]
        assert ids[:3] == ["patient.age", "patient.sex", "patient.pregnant"]
        assert "dysuria" in ids and "recentUti" in ids
        assert len(ids) == 3 + 12

    def test_missing_fields_skip_logic(self, engine):
        """Nothing else runs while a required field is missing."""
        intake = uti_intake(patient={"pregnant": "unknown"})
        result = engine.evaluate(UTI_PACK, intake)
        assert result.outcome == "incomplete"
        assert [m.id for m in result.missing] == ["patient.pregnant"]
        assert result.missing[0].label == "Pregnancy status"
        assert result.trace == []
        assert result.documentation is None
        assert result.safety_net[0].startswith("Seek urgent help")

    def test_invalid_number_counts_as_missing(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake(durationDays="two"))
        assert [m.id for m in result.missing] == ["durationDays"]

    def test_form_required_questions_are_checked(self, registry):
        """Questions flagged ``required`` count even when not declared."""
        pack = registry.require(SORE_THROAT_PACK)
        intake = Intake.model_validate(sore_throat_intake())
        assert collect_missing_fields(pack, intake) == []

        answers = dict(intake.answers)
        del answers["noCough"]
        missing = collect_missing_fields(pack, Intake(patient=intake.patient, answers=answers))
        assert [(m.id, m.label) for m in missing] == [("noCough", "No cough or coryza")]


# =====================================================================
# UTI pathway
# =====================================================================


class TestUtiPathway:

    def test_supply_nitrofurantoin(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake())
        assert result.outcome == "supply"
        assert result.headline == "Supply nitrofurantoin"
        assert result.summary == "Uncomplicated lower UTI in a woman aged 28."
        assert result.supply["product"] == "Nitrofurantoin 100 mg modified-release capsules"
        assert result.supply["dosage"] == "One capsule twice daily for 3 days"
        assert result.referral is None
        assert result.actions == [
            "Advise paracetamol or ibuprofen for pain and adequate fluid intake.",
            "Supply nitrofurantoin under the patient group direction.",
        ]
        assert [t.status for t in result.trace] == ["pass"] * 7
        assert result.trace[2].label == "Age 28 within 16-64"
        assert result.trace[-1].label == "2 key urinary symptoms and no vaginal discharge"
        assert len(result.safety_net) == 3

    def test_pregnant_refers_regardless_of_answers(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake(patient={"pregnant": "yes"}, dysuria="no"))
        assert result.outcome == "refer"
        assert result.urgency == "same-day"
        assert result.referral["destination"] == "GP or maternity unit"
        assert [(t.status, t.label) for t in result.trace] == [("fail", "Patient is pregnant")]
        assert result.actions == ["Arrange same-day GP or maternity assessment."]

    def test_male_patient(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake(patient={"sex": "male"}))
        assert result.outcome == "refer"
        assert result.trace[-1].label == "Pathway applies to women only (recorded sex: male)"

    def test_age_outside_range(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake(patient={"age": 70}))
        assert result.headline == "Refer: outside age range"
        assert result.trace[-1].label == "Age 70 outside 16-64"

    def test_red_flag_warnings(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake(fever="yes", visibleHaematuria="yes"))
        assert result.outcome == "refer"
        assert result.urgency == "urgent"
        assert result.warnings == ["Fever reported: possible upper UTI.", "Visible haematuria reported."]
        assert result.trace[-1].status == "fail"

    def test_vaginal_discharge_alternative_diagnosis(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake(vaginalDischarge="yes"))
        assert result.outcome == "refer"
        assert result.headline == "Refer: consider alternative diagnosis"
        assert [(t.status, t.label) for t in result.trace[-2:]] == [
            ("info", "Fewer than 2 key symptoms or vaginal discharge present"),
            ("warn", "Vaginal discharge suggests an alternative diagnosis"),
        ]

    def test_default_self_care(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake(dysuria="no"))
        assert result.outcome == "advise"
        assert result.headline == "Self-care advice"
        assert result.trace[-1].label == "Fewer than 2 key symptoms"
        assert result.actions[-1] == "Offer self-care advice and review if symptoms worsen."

    def test_long_duration_advice(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake(durationDays="10"))
        assert result.outcome == "supply"
        assert ("info", "Symptoms for 10 days") in [(t.status, t.label) for t in result.trace]
        assert result.warnings == ["Symptoms for more than 7 days; consider sending a urine sample."]

    def test_governance_stamp(self, engine):
        result = engine.evaluate(UTI_PACK, uti_intake())
        assert result.governance == {
            "version": "1.2.0",
            "effectiveFrom": "2024-01-31",
            "lastReviewed": "2024-06-01",
        }

    def test_deterministic(self, engine):
        first = engine.evaluate(UTI_PACK, uti_intake())
        second = engine.evaluate(UTI_PACK, uti_intake())
        assert first.model_dump() == second.model_dump()


# =====================================================================
# Sore throat pathway
# =====================================================================


class TestSoreThroatPathway:

    def test_high_score_supplies_penicillin(self, engine):
        result = engine.evaluate(SORE_THROAT_PACK, sore_throat_intake())
        assert result.outcome == "supply"
        assert result.supply == {
            "product": "Phenoxymethylpenicillin 500 mg tablets",
            "dosage": "500 mg four times daily for 5 days",
        }
        assert result.warnings == []
        assert ("info", "FeverPAIN score 4") in [(t.status, t.label) for t in result.trace]

    def test_allergy_switches_product(self, engine):
        result = engine.evaluate(SORE_THROAT_PACK, sore_throat_intake(antibioticAllergy="yes"))
        assert result.supply["product"] == "Clarithromycin 250 mg tablets"
        assert result.warnings == ["Penicillin allergy recorded: macrolide supplied."]

    def test_mid_score_delayed_review(self, engine):
        result = engine.evaluate(SORE_THROAT_PACK, sore_throat_intake(purulence="no", inflamedTonsils="no"))
        assert result.outcome == "advise"
        assert [t.label for t in result.trace[-2:]] == [
            "FeverPAIN below 4",
            "FeverPAIN 2: self-care with review",
        ]

    def test_airway_emergency(self, engine):
        result = engine.evaluate(SORE_THROAT_PACK, sore_throat_intake(airwayCompromise="yes"))
        assert result.outcome == "refer"
        assert result.urgency == "emergency"
        assert len(result.trace) == 1


# =====================================================================
# Fallbacks and post-processing
# =====================================================================


class TestFallbacks:

    def test_generic_fallback_without_default(self):
        pack = _pack({"outcomes": [{"expression": False, "result": {"outcome": "supply"}}]})
        result = evaluate_pack(pack, {})
        assert result.outcome == "incomplete"
        assert result.headline == "No matching recommendation"
        assert result.summary == "Unable to determine a recommendation for the provided answers."

    def test_headline_fallback(self):
        pack = _pack({"default": {"result": {"outcome": "advise"}}})
        result = evaluate_pack(pack, {})
        assert result.headline == "No recommendation available"
        assert result.urgency == "routine"

    def test_result_safety_net_overrides_pack(self):
        pack = _pack(
            {"default": {"result": {"outcome": "advise", "safetyNet": ["Result-level advice"]}}},
            safetyNetting=["Pack-level advice"],
        )
        assert evaluate_pack(pack, {}).safety_net == ["Result-level advice"]

    def test_warnings_and_actions_deduplicated(self):
        pack = _pack({
            "advice": [
                {"expression": True, "warnings": ["Check fluids", " Check fluids "], "actions": ["Rest"]},
                {"expression": True, "actions": ["Rest", "Hydrate"]},
            ],
            "default": {"result": {"outcome": "advise", "actions": ["Hydrate", "Review"]}},
        })
        result = evaluate_pack(pack, {})
        assert result.warnings == ["Check fluids"]
        assert result.actions == ["Rest", "Hydrate", "Review"]

    def test_derived_values_see_earlier_ones(self):
        pack = _pack({
            "derived": [
                {"id": "a", "expression": 2},
                {"id": "b", "expression": {"*": [{"var": "derived.a"}, 3]}},
            ],
            "default": {"result": {"outcome": "advise", "summary": "b={{derived.b}}"}},
        })
        assert evaluate_pack(pack, {}).summary == "b=6"

    def test_derived_values_do_not_see_later_ones(self):
        pack = _pack({
            "derived": [
                {"id": "a", "expression": {"var": "derived.b"}},
                {"id": "b", "expression": 1},
            ],
            "checks": [{"expression": {"var": "derived.a"}, "fail": {"status": "warn", "label": "a", "warnings": ["a unset"]}}],
            "default": {"result": {"outcome": "advise"}},
        })
        assert evaluate_pack(pack, {}).warnings == ["a unset"]

    def test_check_without_result_does_not_veto(self):
        pack = _pack({
            "checks": [{"expression": False, "fail": {"status": "warn", "label": "Soft gate", "warnings": ["Heads up"]}}],
            "default": {"result": {"outcome": "advise"}},
        })
        result = evaluate_pack(pack, {})
        assert result.outcome == "advise"
        assert [(t.status, t.label) for t in result.trace] == [("warn", "Soft gate")]
        assert result.warnings == ["Heads up"]

    def test_unique_strings_keeps_first_original_text(self):
        assert unique_strings(["a ", "a", "", "b"]) == ["a ", "b"]


# =====================================================================
# Rule-authoring errors
# =====================================================================


class TestAuthoringErrors:

    def test_unknown_outcome(self):
        pack = _pack({"default": {"result": {"outcome": "prescribe"}}})
        with pytest.raises(RuleAuthoringError, match="unknown outcome"):
            evaluate_pack(pack, {})

    def test_result_not_an_object(self):
        pack = _pack({"default": {"result": "supply"}})
        with pytest.raises(RuleAuthoringError):
            evaluate_pack(pack, {})

    def test_supply_not_an_object(self):
        pack = _pack({"default": {"result": {"outcome": "supply", "supply": "tablets"}}})
        with pytest.raises(RuleAuthoringError, match="supply must be an object"):
            evaluate_pack(pack, {})

    def test_unsupported_operator(self):
        pack = _pack({"checks": [{"expression": {"missing": ["answers.x"]}}]})
        with pytest.raises(OperatorNotSupportedError):
            evaluate_pack(pack, {})

    def test_engine_over_registry(self):
        pack = _pack({"default": {"result": {"outcome": "refer"}}})
        engine = PathwayEngine(RulePackRegistry([pack]))
        assert engine.evaluate("test_pack", {}).outcome == "refer"


# =====================================================================
# Consultation note
# =====================================================================


class TestDocumentation:

    def test_supply_note(self, engine):
        note = engine.evaluate(UTI_PACK, uti_intake(patient={"postcode": "AB1 2CD"})).documentation
        lines = note.splitlines()
        assert lines[0] == "# Consultation summary - Uncomplicated UTI (women 16-64)"
        assert "- Patient: age 28, sex female." in lines
        assert "- Pregnancy: not pregnant." in lines
        assert "- Postcode: AB1 2CD." in lines
        assert "- Presenting complaint: Urinary symptoms." in lines
        assert "- Outcome: Supply nitrofurantoin." in lines
        assert "- [PASS] Not pregnant" in lines
        assert "- Product: Nitrofurantoin 100 mg modified-release capsules." in lines
        assert "- Notes: Take with food; may colour urine dark yellow or brown." in lines
        assert lines[-1] == "Document generated by OTC Flow. No patient identifiers stored."

    def test_referral_note(self, engine):
        note = engine.evaluate(UTI_PACK, uti_intake(fever="yes")).documentation
        assert "- Caution: Fever reported: possible upper UTI." in note
        assert "- [FAIL] Red flag present" in note
        assert "- Referral: GP (urgent) (Red flag symptoms)." in note
        assert "- Product:" not in note

    def test_pregnancy_line_only_for_female(self, engine):
        note = engine.evaluate(SORE_THROAT_PACK, sore_throat_intake(patient={"sex": "male"})).documentation
        assert "- Patient: age 22, sex male." in note
        assert "Pregnancy" not in note
