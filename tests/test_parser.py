"""TranscriptParser tests - detectors, pack guessing, cross-checks and samples."""

import json

import pytest

from helpers.loader import PACK_DIR, SORE_THROAT_PACK, UTI_PACK
from helpers.utils import load_json

from otcflow_rules.extraction import (
    SAMPLE_TRANSCRIPTS,
    TranscriptParser,
    get_sample,
    parse_transcript,
    score_pack_confidence,
    score_strength,
)
from otcflow_rules.ruleset import RulePackRegistry


# =====================================================================
# Scoring
# =====================================================================


class TestScoring:

    def test_strength_table(self):
        assert score_strength("explicit") == 0.95
        assert score_strength("strong") == 0.85
        assert score_strength("moderate") == 0.75
        assert score_strength("weak") == 0.6
        assert score_strength("conflict") == 0.35
        assert score_strength(None) == 0.0

    def test_unknown_strength_is_weak(self):
        assert score_strength("certain") == 0.6

    def test_pack_confidence(self):
        assert score_pack_confidence([]) == 0.0
        assert score_pack_confidence([{"weight": 3, "strength": "explicit"}]) == 0.68
        assert score_pack_confidence([{"weight": 2, "strength": "strong"}]) == 0.54

    def test_pack_confidence_is_capped(self):
        evidence = [{"weight": 6, "strength": "explicit"}, {"weight": 6, "strength": "explicit"}]
        assert score_pack_confidence(evidence) == 1.0


# =====================================================================
# Patient detectors
# =====================================================================


class TestPatientFields:

    def test_spec_example(self, parser):
        result = parser.parse("28 year old female reports burning when passing urine... Not pregnant.")
        assert result.patient["age"].value == 28
        assert result.patient["age"].evidence.strength == "explicit"
        assert result.patient["age"].confidence == 0.95
        assert result.patient["sex"].value == "female"
        assert result.patient["pregnant"].value == "no"
        assert result.rule_pack_id == UTI_PACK
        assert result.complaint_id == "urinary_symptoms"

    @pytest.mark.parametrize("text, age, strength", [
        ("Patient aged 45 with cough", 45, "explicit"),
        ("age: 19, sore throat", 19, "explicit"),
        ("a 30 years old man", 30, "explicit"),
        ("52 yo woman", 52, "strong"),
        ("woman in her late 30s", 38, "weak"),
        ("man in his early 40s", 40, "weak"),
        ("lady in her mid 20s", 25, "weak"),
    ])
    def test_age_patterns(self, parser, text, age, strength):
        result = parser.detect_age(text)
        assert result.value == age
        assert result.evidence.strength == strength

    def test_implausible_age_ignored(self, parser):
        assert parser.detect_age("150 years old") is None

    def test_sex_explicit_and_strong(self, parser):
        assert parser.detect_sex("female patient").confidence == 0.95
        woman = parser.detect_sex("a woman with dysuria")
        assert (woman.value, woman.confidence) == ("female", 0.85)
        assert parser.detect_sex("Patient reports dysuria") is None

    def test_sex_majority_wins(self, parser):
        result = parser.detect_sex("A man, he says his throat hurts")
        assert result.value == "male"
        assert result.evidence.terms == ["man", "he"]

    def test_sex_tie_goes_to_female_with_warning(self, parser):
        result = parser.parse("She brought him to the pharmacy")
        assert result.patient["sex"].value == "female"
        assert result.patient["sex"].evidence.all_terms == ["she", "him"]
        assert "Transcript contains both female and male descriptors; review patient sex." in result.warnings

    def test_pregnancy_positive(self, parser):
        result = parser.detect_pregnancy("She is pregnant")
        assert (result.value, result.confidence) == ("yes", 0.95)

    def test_pregnancy_negation_window(self, parser):
        """A negated positive is dropped; nothing else matches, so no value."""
        assert parser.detect_pregnancy("denies being currently pregnant") is None
        assert parser.detect_pregnancy("Not pregnant").value == "no"

    @pytest.mark.parametrize("text", ["Pregnancy test negative.", "negative pregnancy test today"])
    def test_pregnancy_test_phrases(self, parser, text):
        result = parser.detect_pregnancy(text)
        assert (result.value, result.confidence) == ("no", 0.85)

    def test_pregnancy_far_from_negation_is_positive(self):
        parser = TranscriptParser(negation_window=10)
        text = "No fever reported today by the patient, who is pregnant"
        assert parser.detect_pregnancy(text).value == "yes"

    def test_male_pregnant_warning(self, parser):
        result = parser.parse("A man, he says his partner is pregnant")
        assert result.patient["sex"].value == "male"
        assert "Pregnancy detected but patient sex recorded as male." in result.warnings


# =====================================================================
# Pack guess and answers
# =====================================================================


class TestPackAndAnswers:

    def test_no_keywords_no_pack(self, parser):
        result = parser.parse("45 year old man with a rash")
        assert result.rule_pack_id == ""
        assert result.complaint_id == ""
        assert result.rule_pack_confidence == 0.0
        assert result.answers == {}

    def test_sore_throat_guess(self, parser):
        result = parser.parse("Sore throat for 3 days with tonsillar exudate and no fever")
        assert result.rule_pack_id == SORE_THROAT_PACK
        assert result.complaint_id == "sore_throat"
        assert result.answers["fever"].value == "no"
        assert result.answers["purulence"].value == "yes"
        assert result.answers["durationDays"].value == 3

    def test_negated_yes_cue_is_skipped(self, parser):
        result = parser.parse("Woman with UTI symptoms. She denies any fever.")
        assert result.answers["fever"].value == "no"
        assert result.answers["fever"].evidence.strength == "strong"

    def test_duration_out_of_range_ignored(self, parser):
        assert parser.detect_duration("burning urine for 90 days") is None
        assert parser.detect_duration("since the last 5 days").value == 5

    def test_missing_required_questions(self, parser):
        result = parser.parse(get_sample("uti_classic")["text"])
        missing = [m.id for m in result.missing]
        assert missing == [
            "recurrentUti",
            "diabetes",
            "renalImpairment",
            "indwellingCatheter",
            "immunocompromised",
            "recentUti",
        ]
        assert all(m.reason == "not_detected" for m in result.missing)

    def test_without_registry_no_cross_check(self):
        result = parse_transcript(get_sample("uti_classic")["text"])
        assert result.rule_pack_id == UTI_PACK
        assert result.missing == []
        assert result.warnings == []

    def test_target_sex_warning(self, parser):
        result = parser.parse(get_sample("ambiguous_dual")["text"])
        assert result.warnings == ["Uncomplicated UTI (women 16-64) pack targets women; detected sex is male."]

    def test_excludes_pregnancy_warning(self, parser):
        result = parser.parse("28 year old woman, pregnant, with burning when passing urine")
        assert result.patient["pregnant"].value == "yes"
        assert "Uncomplicated UTI (women 16-64) pack excludes pregnancy; confirm suitability." in result.warnings

    def test_pack_declared_profile_overrides_builtin(self, tmp_path):
        raw = load_json(PACK_DIR / f"{UTI_PACK}.json")
        raw["extraction"] = {
            "keywords": [{"pattern": "\\bcystitis\\b", "weight": 3, "strength": "explicit"}],
            "cues": {"dysuria": [{"value": "yes", "pattern": "\\bstinging\\b", "strength": "strong"}]},
        }
        (tmp_path / f"{UTI_PACK}.json").write_text(json.dumps(raw), encoding="utf-8")
        parser = TranscriptParser(RulePackRegistry.from_directory(tmp_path))

        result = parser.parse("Woman aged 30 with cystitis and stinging")
        assert result.rule_pack_id == UTI_PACK
        assert result.complaint_id == "urinary_symptoms"
        assert result.rule_pack_confidence == 0.68
        assert list(result.answers) == ["dysuria"]

        # Built-in keywords are gone for this pack
        assert parser.parse("burning urine").rule_pack_id == ""


# =====================================================================
# Edge cases
# =====================================================================


class TestEdgeCases:

    @pytest.mark.parametrize("text", ["", "   \n\t ", None])
    def test_empty_transcript(self, parser, text):
        result = parser.parse(text)
        assert [m.id for m in result.missing] == ["patient.age", "patient.sex", "patient.pregnant"]
        assert result.patient["pregnant"].value == "unknown"
        assert result.patient["age"].value is None
        assert result.rule_pack_id == ""
        assert result.answers == {}

    def test_deterministic(self, parser):
        text = get_sample("feverpain_high")["text"]
        assert parser.parse(text).model_dump_json() == parser.parse(text).model_dump_json()

    def test_registry_not_mutated(self, registry, parser):
        before = [p.model_dump() for p in registry.packs]
        parser.parse(get_sample("uti_classic")["text"])
        assert [p.model_dump() for p in registry.packs] == before

    def test_wire_format_is_camel_case(self, parser):
        dumped = parser.parse(get_sample("uti_classic")["text"]).model_dump(by_alias=True)
        assert {"rulePackId", "complaintId", "rulePackConfidence"} <= set(dumped)


# =====================================================================
# Sample transcripts
# =====================================================================


class TestSamples:

    @pytest.mark.parametrize("sample", SAMPLE_TRANSCRIPTS, ids=lambda s: s["id"])
    def test_sample_expectations(self, parser, sample):
        expected = sample["expected"]
        result = parser.parse(sample["text"])
        assert result.complaint_id == expected["complaintId"]
        assert result.rule_pack_id == expected["rulePackId"]
        for name, value in expected["patient"].items():
            assert result.patient[name].value == value, name
        for name, value in expected["answers"].items():
            assert result.answers[name].value == value, name

    def test_get_sample_unknown(self):
        with pytest.raises(KeyError):
            get_sample("nope")
