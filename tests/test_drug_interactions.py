"""
Unit tests for the drug interaction and renal dosing checker
"""

import pytest

from cdss.config import Settings
from cdss.exceptions import ValidationError
from cdss.schemas import InteractionSeverity, ContraindicationKind, RenalCategory
from cdss.modules.drug_catalog import (
    DrugCatalog, build_default_drug_catalog, normalize_term, DRUG_CLASSES
)
from cdss.modules.drug_interactions import (
    DrugInteractionChecker, check_drug_interactions
)


class TestDrugInteractions:
    """Test pairwise drug-drug interaction detection"""

    def test_direct_interaction(self, checker):
        """Test warfarin + aspirin is a direct major interaction"""
        result = checker.check_interactions(["warfarin", "aspirin"])

        assert len(result.interactions) == 1
        finding = result.interactions[0]
        assert finding.severity == InteractionSeverity.MAJOR
        assert finding.class_level is False
        assert (finding.medication_a, finding.medication_b) == ("warfarin", "aspirin")
        assert result.summary.major == 1

    def test_order_independent(self, checker):
        """Test reordering the medication list gives identical findings"""
        forward = checker.check_interactions(["warfarin", "aspirin", "amiodarone", "sotalol"])
        backward = checker.check_interactions(["sotalol", "amiodarone", "aspirin", "warfarin"])

        assert [f.model_dump() for f in forward.interactions] == \
            [f.model_dump() for f in backward.interactions]

    def test_class_level_interaction(self, checker):
        """Test anticoagulant + antiplatelet without direct entry matches by class"""
        result = checker.check_interactions(["warfarin", "clopidogrel"])

        assert len(result.interactions) == 1
        assert result.interactions[0].class_level is True
        assert result.interactions[0].drug_a == "anticoagulants"

    def test_direct_entry_shadows_class_entry(self, checker):
        """Test a direct match suppresses the class-level duplicate"""
        result = checker.check_interactions(["ramipril", "spironolactone"])

        assert len(result.interactions) == 1
        assert result.interactions[0].class_level is False

    def test_severity_ordering(self, checker):
        """Test contraindicated pairs come before major ones"""
        result = checker.check_interactions(["warfarin", "aspirin", "amiodarone", "sotalol"])

        assert [f.severity for f in result.interactions] == [
            InteractionSeverity.CONTRAINDICATED,
            InteractionSeverity.MAJOR,
        ]
        assert result.summary.contraindicated == 1

    def test_brand_and_french_names(self, checker):
        """Test brand names, French names and dose suffixes resolve"""
        result = checker.check_interactions(["Coumadine", "Kardegic 75 mg"])

        assert len(result.interactions) == 1
        assert result.interactions[0].medication_a == "Coumadine"
        assert result.interactions[0].medication_b == "Kardegic 75 mg"

    def test_duplicates_collapse(self, checker):
        """Test the same drug under two names is checked once"""
        result = checker.check_interactions(["warfarin", "Coumadin", "aspirin"])

        assert len(result.interactions) == 1
        assert result.interactions[0].medication_a == "warfarin"

    def test_unknown_medications_listed(self, checker):
        """Test unknown names are reported, not rejected"""
        result = checker.check_interactions(["warfarin", "unobtainium", "UNOBTAINIUM"])

        assert result.unrecognized_medications == ["unobtainium"]
        assert result.interactions == []

    def test_ophthalmic_beta_blocker(self, checker):
        """Test timolol eye drops reach the systemic beta-blocker interaction"""
        for timolol in ("timolol", "Timoptol", "timolol collyre"):
            result = checker.check_interactions([timolol, "metoprolol"])

            assert len(result.interactions) == 1
            assert result.interactions[0].severity == InteractionSeverity.MODERATE
            assert result.interactions[0].medication_a == timolol

    def test_module_function(self):
        """Test public convenience function"""
        result = check_drug_interactions(["digoxin", "amiodarone"])
        assert result.interactions[0].severity == InteractionSeverity.MAJOR


class TestMedicationValidation:
    """Test medication list validation"""

    @pytest.mark.parametrize("medications", [[], "warfarin", None, ["warfarin", ""], ["warfarin", None]])
    def test_rejects_malformed_lists(self, checker, medications):
        """Test empty, non-list and blank entries raise"""
        with pytest.raises(ValidationError) as exc_info:
            checker.check_interactions(medications)

        assert exc_info.value.field == "medications"

    def test_rejects_oversized_list(self):
        """Test the configured maximum is enforced"""
        checker = DrugInteractionChecker(
            build_default_drug_catalog(),
            Settings(_env_file=None, interactions_max_medications=2)
        )

        with pytest.raises(ValidationError) as exc_info:
            checker.check_interactions(["warfarin", "aspirin", "metformin"])

        assert exc_info.value.details["max"] == 2

    def test_rejects_out_of_range_egfr(self, checker):
        """Test eGFR above 200 raises"""
        with pytest.raises(ValidationError) as exc_info:
            checker.check_interactions(["metformin"], egfr=250)

        assert exc_info.value.field == "egfr"


class TestConditionContraindications:
    """Test drug-condition contraindications"""

    def test_condition_synonym(self, checker):
        """Test free-text condition resolves through synonyms"""
        result = checker.check_interactions(["ibuprofen"], conditions=["Chronic kidney disease"])

        assert len(result.contraindications) == 1
        finding = result.contraindications[0]
        assert finding.kind == ContraindicationKind.CONDITION
        assert finding.condition_or_allergy == "ckd"
        assert finding.severity == InteractionSeverity.MAJOR
        assert finding.derived is False

    def test_general_term_does_not_match_specific_key(self, checker):
        """Test "ckd" does not denote the stage 4-5 contraindication"""
        result = checker.check_interactions(["metformin"], conditions=["ckd"])
        assert result.contraindications == []

    def test_specific_term_matches_general_key(self, checker):
        """Test stage 4-5 CKD also denotes CKD"""
        result = checker.check_interactions(["metformin", "ibuprofen"], conditions=["CKD stage 4-5"])

        keys = {(f.medication, f.condition_or_allergy) for f in result.contraindications}
        assert keys == {("metformin", "ckd_stage_4_5"), ("ibuprofen", "ckd")}
        assert result.contraindications[0].severity == InteractionSeverity.CONTRAINDICATED

    def test_class_contraindication(self, checker):
        """Test a class entry applies to its members"""
        result = checker.check_interactions(["propranolol"], conditions=["asthma"])

        assert result.contraindications[0].drug == "beta_blockers_non_selective"
        assert result.contraindications[0].severity == InteractionSeverity.CONTRAINDICATED

    def test_ophthalmic_beta_blocker_in_asthma(self, checker):
        """Test timolol brand name is a non-selective beta-blocker"""
        result = checker.check_interactions(["Timoptol"], conditions=["asthma"])

        assert len(result.contraindications) == 1
        assert result.contraindications[0].drug == "beta_blockers_non_selective"
        assert result.contraindications[0].severity == InteractionSeverity.CONTRAINDICATED

    def test_derived_from_egfr(self, checker):
        """Test low eGFR derives renal conditions"""
        result = checker.check_interactions(["metformin"], egfr=20)

        assert len(result.contraindications) == 1
        finding = result.contraindications[0]
        assert finding.condition_or_allergy == "ckd_stage_4_5"
        assert finding.derived is True

    def test_derived_from_dialysis(self, checker):
        """Test dialysis status derives the dialysis condition"""
        result = checker.check_interactions(["metformin"], is_on_dialysis=True)

        assert [f.condition_or_allergy for f in result.contraindications] == ["dialysis"]

    def test_supplied_condition_preferred_over_derived(self, checker):
        """Test a supplied term is reported when both match"""
        result = checker.check_interactions(["metformin"], conditions=["ESRD"], egfr=10)

        finding = result.contraindications[0]
        assert finding.matched_term == "ESRD"
        assert finding.derived is False

    def test_derivation_can_be_disabled(self):
        """Test the derivation toggle"""
        checker = DrugInteractionChecker(
            build_default_drug_catalog(),
            Settings(_env_file=None, interactions_derive_renal_conditions=False)
        )

        assert checker.check_interactions(["metformin"], egfr=20).contraindications == []


class TestAllergyContraindications:
    """Test drug-allergy contraindications and cross-reactivity"""

    def test_penicillin_cross_reactivity(self, checker):
        """Test amoxicillin with penicillin allergy"""
        result = checker.check_interactions(["amoxicillin"], allergies=["Penicillin"])

        assert len(result.contraindications) == 1
        finding = result.contraindications[0]
        assert finding.kind == ContraindicationKind.ALLERGY
        assert finding.severity == InteractionSeverity.CONTRAINDICATED
        assert finding.cross_reactivity is True
        assert finding.rationale.startswith("CONTRE-INDIQUÉ si allergie vraie pénicilline")

    def test_class_membership_without_table_entry(self, checker):
        """Test piperacillin is caught through the penicillin class"""
        result = checker.check_interactions(["piperacillin"], allergies=["penicillin"])

        finding = result.contraindications[0]
        assert finding.condition_or_allergy == "penicillins"
        assert finding.severity == InteractionSeverity.CONTRAINDICATED

    def test_low_cross_reactivity(self, checker):
        """Test third generation cephalosporin is moderate"""
        result = checker.check_interactions(["ceftriaxone"], allergies=["penicillin"])

        assert result.contraindications[0].severity == InteractionSeverity.MODERATE
        assert result.contraindications[0].cross_reactivity is False

    def test_direct_allergy(self, checker):
        """Test allergy to the drug itself"""
        result = checker.check_interactions(["aspirin"], allergies=["aspirin"])

        finding = result.contraindications[0]
        assert finding.condition_or_allergy == "aspirin"
        assert finding.severity == InteractionSeverity.CONTRAINDICATED
        assert finding.cross_reactivity is False

    def test_direct_allergy_not_downgraded(self, checker):
        """Test allergy to the prescribed drug wins over a weaker cross-reactivity row"""
        result = checker.check_interactions(["codeine"], allergies=["codeine"])

        assert len(result.contraindications) == 1
        finding = result.contraindications[0]
        assert finding.severity == InteractionSeverity.CONTRAINDICATED
        assert finding.condition_or_allergy == "codeine"
        assert finding.cross_reactivity is False

    def test_class_allergy_not_downgraded(self, checker):
        """Test an allergy naming a drug class contraindicates every member"""
        result = checker.check_interactions(["fentanyl"], allergies=["opioids"])

        assert len(result.contraindications) == 1
        finding = result.contraindications[0]
        assert finding.severity == InteractionSeverity.CONTRAINDICATED
        assert finding.condition_or_allergy == "opioids"
        assert finding.cross_reactivity is True

    def test_cross_reactivity_outside_allergen_class(self, checker):
        """Test table grades apply to drugs other than the allergen itself"""
        fentanyl = checker.check_interactions(["fentanyl"], allergies=["morphine"])
        codeine = checker.check_interactions(["codeine"], allergies=["morphine"])

        assert fentanyl.contraindications[0].severity == InteractionSeverity.MINOR
        assert codeine.contraindications[0].severity == InteractionSeverity.MAJOR

    def test_nsaid_aspirin_cross_reactivity(self, checker):
        """Test French allergen name resolves"""
        result = checker.check_interactions(["ibuprofen"], allergies=["Aspirine"])

        assert result.contraindications[0].severity == InteractionSeverity.MAJOR

    def test_unrelated_allergy(self, checker):
        """Test no finding for an unrelated allergy"""
        result = checker.check_interactions(["metoprolol"], allergies=["penicillin"])
        assert result.contraindications == []


class TestRenalDosing:
    """Test renal dose selection"""

    @pytest.mark.parametrize("egfr,category,dose", [
        (90, RenalCategory.NORMAL, "10-40 mg/jour"),
        (60, RenalCategory.NORMAL, "10-40 mg/jour"),
        (59.9, RenalCategory.EGFR_30_59, "5-20 mg/jour"),
        (30, RenalCategory.EGFR_30_59, "5-20 mg/jour"),
        (29.9, RenalCategory.EGFR_15_29, "2.5-10 mg/jour"),
        (15, RenalCategory.EGFR_15_29, "2.5-10 mg/jour"),
        (14.9, RenalCategory.EGFR_BELOW_15, "2.5-5 mg/jour"),
        (0, RenalCategory.EGFR_BELOW_15, "2.5-5 mg/jour"),
    ])
    def test_egfr_buckets(self, checker, egfr, category, dose):
        """Test band boundaries"""
        recommendation = checker.get_dose_adjustment("lisinopril", egfr=egfr)

        assert recommendation.renal_category == category
        assert recommendation.applicable_dose == dose

    @pytest.mark.parametrize("egfr", [None, 5, 45, 120])
    def test_dialysis_takes_precedence(self, checker, egfr):
        """Test dialysis dose regardless of eGFR"""
        recommendation = checker.get_dose_adjustment("metformin", egfr=egfr, is_on_dialysis=True)

        assert recommendation.renal_category == RenalCategory.DIALYSIS
        assert recommendation.applicable_dose == "Contre-indiqué"

    def test_unknown_without_renal_data(self, checker):
        """Test normal dose flagged unknown when no eGFR is given"""
        recommendation = checker.get_dose_adjustment("Zestril")

        assert recommendation.renal_category == RenalCategory.UNKNOWN
        assert recommendation.applicable_dose == "10-40 mg/jour"
        assert recommendation.medication == "Zestril"

    def test_drug_without_dosing_entry(self, checker):
        """Test None for drugs outside the dosing table"""
        assert checker.get_dose_adjustment("warfarin", egfr=40) is None
        assert checker.get_dose_adjustment("unobtainium", egfr=40) is None

    def test_rejects_invalid_egfr(self, checker):
        """Test eGFR range check"""
        with pytest.raises(ValidationError):
            checker.get_dose_adjustment("lisinopril", egfr=-5)

    def test_check_includes_dose_adjustments(self, checker):
        """Test dose adjustments keyed by supplied name when renal data given"""
        result = checker.check_interactions(["Zestril", "warfarin"], egfr=45)

        assert list(result.dose_adjustments) == ["Zestril"]
        assert result.dose_adjustments["Zestril"].renal_category == RenalCategory.EGFR_30_59

    def test_check_without_renal_data(self, checker):
        """Test no dose adjustments without eGFR or dialysis status"""
        assert checker.check_interactions(["lisinopril"]).dose_adjustments == {}


class TestDrugCatalog:
    """Test catalog construction and lookup helpers"""

    def test_normalize_term(self):
        """Test accents, case and separators"""
        assert normalize_term("Métoprolol 50 mg") == "metoprolol_50_mg"
        assert normalize_term("  CKD stage 4-5 ") == "ckd_stage_4_5"

    def test_resolve_drug(self, checker):
        """Test leading word fallback"""
        catalog = checker.catalog

        assert catalog.resolve_drug("Métoprolol 50 mg") == "metoprolol"
        assert catalog.resolve_drug("acide acétylsalicylique") == "aspirin"
        assert catalog.resolve_drug("") is None

    def test_classes_of(self, checker):
        """Test class membership lookup drives matching"""
        catalog = checker.catalog

        assert set(catalog.classes_of("propranolol")) == {"beta_blockers", "beta_blockers_non_selective"}
        assert catalog.classes_of("unobtainium") == ()
        assert catalog.matches("timolol", "beta_blockers_non_selective")
        assert not catalog.matches("metoprolol", "beta_blockers_non_selective")

    def test_rejects_alias_to_unknown_drug(self):
        """Test aliases must point at a known drug"""
        with pytest.raises(ValidationError) as exc_info:
            DrugCatalog([], [], [], {}, DRUG_CLASSES, aliases={"foo": "bar"})

        assert exc_info.value.field == "aliases"

    def test_rejects_unknown_allergen_class(self):
        """Test allergen classes must exist"""
        with pytest.raises(ValidationError):
            DrugCatalog([], [], [], {}, [], allergen_classes={"penicillin": "penicillins"})

    def test_get_drug_classes(self, checker):
        """Test class reference listing"""
        classes = {c.key: c for c in checker.get_drug_classes()}

        assert len(classes) == 24
        assert "piperacillin" in classes["penicillins"].members

    def test_reload(self, checker):
        """Test reload swaps the catalog and validates the argument"""
        catalog = DrugCatalog([], [], [], {}, DRUG_CLASSES, version="empty")
        checker.reload(catalog)

        assert checker.check_interactions(["warfarin", "clopidogrel"]).interactions == []
        with pytest.raises(ValidationError):
            checker.reload({})
