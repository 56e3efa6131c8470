"""
Drug Interaction & Dosing Checker
Pairwise drug-drug interactions, drug-condition and drug-allergy
contraindications, renal dose selection
"""

import logging
from itertools import combinations
from typing import List, Optional, Sequence, Set, Tuple

from cdss.config import Settings, settings
from cdss.exceptions import ValidationError, require_range
from cdss.schemas import (
    InteractionSeverity, ContraindicationKind, RenalCategory,
    RenalDoseAdjustment, DoseRecommendation, DrugInteractionFinding,
    ContraindicationFinding, InteractionCheckResult, InteractionSummary,
    DrugClassReference, DrugInteractionEntry
)
from cdss.modules.calculators import ckd_stage, EGFR_RANGE
from cdss.modules.drug_catalog import DrugCatalog, build_default_drug_catalog, normalize_term

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {
    InteractionSeverity.CONTRAINDICATED: 0,
    InteractionSeverity.MAJOR: 1,
    InteractionSeverity.MODERATE: 2,
    InteractionSeverity.MINOR: 3,
}

# (input name, canonical drug)
ResolvedMedication = Tuple[str, str]


def select_renal_dose(
    entry: RenalDoseAdjustment,
    egfr: Optional[float],
    is_on_dialysis: bool
) -> Tuple[str, RenalCategory]:
    """Dialysis wins over any eGFR; then <15, <30, <60, else the normal dose"""
    if is_on_dialysis:
        return entry.dialysis, RenalCategory.DIALYSIS
    if egfr is None:
        return entry.normal_dose, RenalCategory.UNKNOWN
    if egfr < 15:
        return entry.egfr_below15, RenalCategory.EGFR_BELOW_15
    if egfr < 30:
        return entry.egfr15_29, RenalCategory.EGFR_15_29
    if egfr < 60:
        return entry.egfr30_59, RenalCategory.EGFR_30_59
    return entry.normal_dose, RenalCategory.NORMAL


class DrugInteractionChecker:
    """
    Checks a medication list against a drug catalog

    Pure computation: no state besides the catalog reference, which reload()
    replaces atomically.
    """

    def __init__(self, catalog: Optional[DrugCatalog] = None, config: Optional[Settings] = None):
        self._catalog = catalog if catalog is not None else build_default_drug_catalog()
        self._settings = config or settings
        logger.info(
            f"Initialized drug interaction checker with {len(self._catalog.known_drugs)} known drugs"
        )

    @property
    def catalog(self) -> DrugCatalog:
        return self._catalog

    def reload(self, catalog: DrugCatalog) -> None:
        """Atomically replace the drug catalog"""
        if not isinstance(catalog, DrugCatalog):
            raise ValidationError("reload() expects a DrugCatalog", field="catalog")
        self._catalog = catalog
        logger.info(f"Reloaded drug catalog v{catalog.version}")

    # =========================================================================
    # Public operations
    # =========================================================================

    def check_interactions(
        self,
        medications: Sequence[str],
        conditions: Optional[Sequence[str]] = None,
        allergies: Optional[Sequence[str]] = None,
        egfr: Optional[float] = None,
        is_on_dialysis: bool = False
    ) -> InteractionCheckResult:
        """
        Check a medication list for interactions, contraindications and renal dosing

        Args:
            medications: Medication names (at least one)
            conditions: Patient conditions
            allergies: Patient allergies
            egfr: eGFR in mL/min/1.73m², enables renal dosing
            is_on_dialysis: Dialysis status, enables renal dosing

        Returns:
            InteractionCheckResult; unknown names are listed, not rejected

        Raises:
            ValidationError: empty or oversized medication list, eGFR out of range
        """
        names = self._validate_medications(medications)
        if egfr is not None:
            egfr = require_range(egfr, "egfr", *EGFR_RANGE)

        catalog = self._catalog
        resolved, unrecognized = self._resolve(catalog, names)

        interactions = self._find_interactions(catalog, resolved)
        contraindications = self._find_condition_contraindications(
            catalog, resolved, self._terms(conditions), egfr, is_on_dialysis
        )
        contraindications.extend(
            self._find_allergy_contraindications(catalog, resolved, self._terms(allergies))
        )
        contraindications.sort(key=lambda f: (
            SEVERITY_ORDER[f.severity],
            normalize_term(f.medication),
            f.kind.value,
            f.condition_or_allergy
        ))

        dose_adjustments = {}
        if egfr is not None or is_on_dialysis:
            for name, canonical in resolved:
                recommendation = self._dose_for(catalog, name, canonical, egfr, is_on_dialysis)
                if recommendation is not None:
                    dose_adjustments[name] = recommendation

        counts = {severity: 0 for severity in InteractionSeverity}
        for finding in interactions:
            counts[finding.severity] += 1
        for finding in contraindications:
            counts[finding.severity] += 1

        if unrecognized:
            logger.info(f"No drug data available for: {unrecognized}")
        logger.info(
            f"Checked {len(names)} medications: {len(interactions)} interactions, "
            f"{len(contraindications)} contraindications, {len(dose_adjustments)} dose adjustments"
        )

        return InteractionCheckResult(
            interactions=interactions,
            contraindications=contraindications,
            dose_adjustments=dose_adjustments,
            unrecognized_medications=unrecognized,
            summary=InteractionSummary(
                contraindicated=counts[InteractionSeverity.CONTRAINDICATED],
                major=counts[InteractionSeverity.MAJOR],
                moderate=counts[InteractionSeverity.MODERATE],
                minor=counts[InteractionSeverity.MINOR]
            )
        )

    def get_dose_adjustment(
        self,
        drug_name: str,
        egfr: Optional[float] = None,
        is_on_dialysis: bool = False
    ) -> Optional[DoseRecommendation]:
        """
        Renal dose for one drug

        Returns None when the drug is not in the dosing table. Without eGFR or
        dialysis status the normal dose is returned, flagged unknown.
        """
        if egfr is not None:
            egfr = require_range(egfr, "egfr", *EGFR_RANGE)

        catalog = self._catalog
        canonical = catalog.resolve_drug(drug_name)
        if canonical is None:
            return None
        return self._dose_for(catalog, drug_name, canonical, egfr, is_on_dialysis)

    def get_drug_classes(self) -> List[DrugClassReference]:
        """Reference list of drug classes and their members"""
        return list(self._catalog.drug_classes.values())

    # =========================================================================
    # Matching
    # =========================================================================

    def _find_interactions(
        self,
        catalog: DrugCatalog,
        resolved: List[ResolvedMedication]
    ) -> List[DrugInteractionFinding]:
        matched: List[Tuple[int, int, DrugInteractionFinding]] = []

        # Canonical order makes the result independent of input order
        ordered = sorted(resolved, key=lambda item: item[1])

        for first, second in combinations(ordered, 2):
            direct = []
            class_level = []
            for index, entry in enumerate(catalog.interactions):
                oriented = self._orient(catalog, entry, first, second)
                if oriented is None:
                    continue
                is_class_entry = catalog.is_class(entry.drug_a) or catalog.is_class(entry.drug_b)
                (class_level if is_class_entry else direct).append((index, entry, oriented))

            for index, entry, (med_a, med_b) in direct or class_level:
                matched.append((
                    SEVERITY_ORDER[entry.severity],
                    index,
                    DrugInteractionFinding(
                        medication_a=med_a,
                        medication_b=med_b,
                        drug_a=entry.drug_a,
                        drug_b=entry.drug_b,
                        severity=entry.severity,
                        mechanism=entry.mechanism,
                        effect=entry.effect,
                        management=entry.management,
                        references=list(entry.references),
                        class_level=not direct
                    )
                ))

        matched.sort(key=lambda item: (item[0], item[1], item[2].medication_a, item[2].medication_b))
        return [finding for _, _, finding in matched]

    @staticmethod
    def _orient(
        catalog: DrugCatalog,
        entry: DrugInteractionEntry,
        first: ResolvedMedication,
        second: ResolvedMedication
    ) -> Optional[Tuple[str, str]]:
        """Input names ordered as (drug_a side, drug_b side), or None if the entry does not apply"""
        if catalog.matches(first[1], entry.drug_a) and catalog.matches(second[1], entry.drug_b):
            return first[0], second[0]
        if catalog.matches(second[1], entry.drug_a) and catalog.matches(first[1], entry.drug_b):
            return second[0], first[0]
        return None

    def _find_condition_contraindications(
        self,
        catalog: DrugCatalog,
        resolved: List[ResolvedMedication],
        conditions: List[str],
        egfr: Optional[float],
        is_on_dialysis: bool
    ) -> List[ContraindicationFinding]:
        terms = [(term, False) for term in conditions]
        if self._settings.interactions_derive_renal_conditions:
            terms.extend((term, True) for term in self._derived_renal_conditions(egfr, is_on_dialysis))

        findings = []
        seen: Set[Tuple[str, int]] = set()

        for name, canonical in resolved:
            for index, entry in enumerate(catalog.contraindications):
                if (canonical, index) in seen or not catalog.matches(canonical, entry.drug):
                    continue
                # Supplied conditions come before derived ones
                for term, derived in terms:
                    if catalog.condition_matches(term, entry.condition_or_allergy):
                        seen.add((canonical, index))
                        findings.append(ContraindicationFinding(
                            medication=name,
                            matched_term=term,
                            kind=ContraindicationKind.CONDITION,
                            drug=entry.drug,
                            condition_or_allergy=entry.condition_or_allergy,
                            severity=entry.severity,
                            rationale=entry.rationale,
                            management=entry.management,
                            derived=derived
                        ))
                        break
        return findings

    @staticmethod
    def _derived_renal_conditions(egfr: Optional[float], is_on_dialysis: bool) -> List[str]:
        derived = []
        if egfr is not None:
            stage = ckd_stage(egfr).stage
            if stage in ("3a", "3b", "4", "5"):
                derived.append("ckd")
            if stage in ("4", "5"):
                derived.append("ckd_stage_4_5")
        if is_on_dialysis:
            derived.append("dialysis")
        return derived

    def _find_allergy_contraindications(
        self,
        catalog: DrugCatalog,
        resolved: List[ResolvedMedication],
        allergies: List[str]
    ) -> List[ContraindicationFinding]:
        findings = []
        seen: Set[Tuple[str, str]] = set()

        for name, canonical in resolved:
            for allergy in allergies:
                allergen_keys = catalog.allergen_keys(allergy)
                rows = [
                    entry for entry in catalog.allergy_entries
                    if entry.condition_or_allergy in allergen_keys and catalog.matches(canonical, entry.drug)
                ]

                # Identity or own-class allergy is always contraindicated
                allergen_drug = catalog.resolve_drug(allergy)
                allergen_class = catalog.allergy_class(allergy)
                direct = allergen_drug == canonical
                if direct or (allergen_class is not None and catalog.matches(canonical, allergen_class)):
                    target = canonical if direct else allergen_class
                    key = (canonical, target)
                    if key in seen:
                        continue
                    seen.add(key)
                    row = None if direct else next(
                        (e for e in rows if e.severity == InteractionSeverity.CONTRAINDICATED), None
                    )
                    findings.append(ContraindicationFinding(
                        medication=name,
                        matched_term=allergy,
                        kind=ContraindicationKind.ALLERGY,
                        drug=canonical,
                        condition_or_allergy=target,
                        severity=InteractionSeverity.CONTRAINDICATED,
                        rationale=row.rationale if row else
                        f"Allergie documentée ({allergy}) à ce médicament ou à sa classe",
                        management="CONTRE-INDIQUÉ. Choisir une alternative d'une autre classe.",
                        cross_reactivity=not direct
                    ))
                    continue

                for entry in rows:
                    key = (canonical, f"{entry.drug}:{entry.condition_or_allergy}")
                    if key in seen:
                        continue
                    seen.add(key)
                    findings.append(ContraindicationFinding(
                        medication=name,
                        matched_term=allergy,
                        kind=ContraindicationKind.ALLERGY,
                        drug=entry.drug,
                        condition_or_allergy=entry.condition_or_allergy,
                        severity=entry.severity,
                        rationale=entry.rationale,
                        management=entry.management,
                        cross_reactivity=entry.cross_reactivity
                    ))
        return findings

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _dose_for(
        catalog: DrugCatalog,
        name: str,
        canonical: str,
        egfr: Optional[float],
        is_on_dialysis: bool
    ) -> Optional[DoseRecommendation]:
        entry = catalog.renal_doses.get(canonical)
        if entry is None:
            return None
        dose, category = select_renal_dose(entry, egfr, is_on_dialysis)
        return DoseRecommendation(
            **entry.model_dump(),
            medication=name,
            applicable_dose=dose,
            renal_category=category,
            patient_egfr=egfr,
            is_on_dialysis=is_on_dialysis
        )

    def _validate_medications(self, medications: Sequence[str]) -> List[str]:
        if isinstance(medications, str) or medications is None:
            raise ValidationError("medications must be a list of names", field="medications")

        names = [m.strip() for m in medications if isinstance(m, str) and m.strip()]
        if len(names) != len(medications):
            raise ValidationError("medication names must be non-empty strings", field="medications")
        if not names:
            raise ValidationError("At least one medication is required", field="medications")

        limit = self._settings.interactions_max_medications
        if len(names) > limit:
            raise ValidationError(
                f"Too many medications ({len(names)}), maximum is {limit}",
                field="medications",
                details={"max": limit}
            )
        return names

    @staticmethod
    def _resolve(
        catalog: DrugCatalog,
        names: List[str]
    ) -> Tuple[List[ResolvedMedication], List[str]]:
        resolved: List[ResolvedMedication] = []
        unrecognized: List[str] = []
        seen_drugs: Set[str] = set()
        seen_unknown: Set[str] = set()

        for name in names:
            canonical = catalog.resolve_drug(name)
            if canonical is None:
                key = normalize_term(name)
                if key not in seen_unknown:
                    seen_unknown.add(key)
                    unrecognized.append(name)
                continue
            # Duplicates collapse onto the first occurrence
            if canonical not in seen_drugs:
                seen_drugs.add(canonical)
                resolved.append((name, canonical))
        return resolved, unrecognized

    @staticmethod
    def _terms(values: Optional[Sequence[str]]) -> List[str]:
        return [v.strip() for v in (values or []) if isinstance(v, str) and v.strip()]


# =============================================================================
# Public API
# =============================================================================

_default_checker: Optional[DrugInteractionChecker] = None


def get_interaction_checker() -> DrugInteractionChecker:
    """Shared checker over the default drug catalog, built on first use"""
    global _default_checker
    if _default_checker is None:
        _default_checker = DrugInteractionChecker()
    return _default_checker


def check_drug_interactions(
    medications: Sequence[str],
    conditions: Optional[Sequence[str]] = None,
    allergies: Optional[Sequence[str]] = None,
    egfr: Optional[float] = None,
    is_on_dialysis: bool = False
) -> InteractionCheckResult:
    """
    Check a medication list against the default drug catalog

    Args:
        medications: Medication names
        conditions: Patient conditions
        allergies: Patient allergies
        egfr: eGFR in mL/min/1.73m²
        is_on_dialysis: Dialysis status

    Returns:
        InteractionCheckResult
    """
    return get_interaction_checker().check_interactions(
        medications, conditions, allergies, egfr, is_on_dialysis
    )
