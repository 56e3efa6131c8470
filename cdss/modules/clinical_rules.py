"""
CDSS Clinical Rules Engine
Evaluates guideline rules against an immutable patient clinical snapshot
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple, Union

from cdss.exceptions import ValidationError, RuleEvaluationError
from cdss.schemas import (
    PatientClinicalSnapshot, CDSSFinding, EvaluationResult, EvaluationSummary,
    RuleSummary, RuleCountSummary, ClinicalModule, AlertSeverity, AlertContent
)
from cdss.modules.rule_catalog import CDSSRule, RuleCatalog, build_default_rule_catalog

logger = logging.getLogger(__name__)

SnapshotInput = Union[PatientClinicalSnapshot, Dict[str, Any]]
ModuleInput = Optional[Union[ClinicalModule, str]]


class ClinicalRulesEngine:
    """
    Main clinical rules engine
    Runs every active rule of its catalog and turns fired rules into findings.

    The engine holds a single catalog reference. reload() swaps it; each
    evaluation reads it once, so a call never sees two catalog versions.
    """

    def __init__(self, catalog: Optional[RuleCatalog] = None):
        """Initialize rules engine with a catalog (default: built-in guidelines)"""
        self._catalog = catalog if catalog is not None else build_default_rule_catalog()
        logger.info(
            f"Initialized clinical rules engine with {len(self._catalog.active_rules)} rules"
        )

    @property
    def catalog(self) -> RuleCatalog:
        return self._catalog

    def reload(self, catalog: RuleCatalog) -> None:
        """Atomically replace the rule catalog"""
        if not isinstance(catalog, RuleCatalog):
            raise ValidationError("reload() expects a RuleCatalog", field="catalog")
        previous = self._catalog
        self._catalog = catalog
        logger.info(
            f"Reloaded rule catalog v{previous.version} -> v{catalog.version} "
            f"({len(catalog.active_rules)} active rules)"
        )

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, snapshot: SnapshotInput) -> List[CDSSFinding]:
        """
        Evaluate all active rules

        Args:
            snapshot: Patient clinical snapshot (or a dict validated into one)

        Returns:
            Findings ordered by priority (highest first), catalog order on ties
        """
        findings, _, _ = self._run(self._coerce_snapshot(snapshot), None)
        return findings

    def evaluate_by_module(
        self,
        snapshot: SnapshotInput,
        module: Union[ClinicalModule, str]
    ) -> List[CDSSFinding]:
        """
        Evaluate rules of one module plus general/global rules

        Raises:
            ValidationError: missing or unknown module, before any rule runs
        """
        if module is None:
            raise ValidationError(
                "A clinical module is required",
                field="module",
                allowed=[m.value for m in ClinicalModule]
            )
        resolved = self._resolve_module(module)
        findings, _, _ = self._run(self._coerce_snapshot(snapshot), resolved)
        return findings

    def evaluate_patient(
        self,
        snapshot: SnapshotInput,
        module: ModuleInput = None
    ) -> EvaluationResult:
        """
        Evaluate and annotate the outcome with failed rules and severity counts

        Args:
            snapshot: Patient clinical snapshot
            module: Optional module filter

        Returns:
            EvaluationResult
        """
        resolved = self._resolve_module(module)
        snapshot = self._coerce_snapshot(snapshot)
        findings, failures, rules_evaluated = self._run(snapshot, resolved)

        severities = Counter(f.severity for f in findings)
        summary = EvaluationSummary(
            critical=severities[AlertSeverity.CRITICAL] + severities[AlertSeverity.CONTRAINDICATED],
            warning=severities[AlertSeverity.WARNING],
            info=severities[AlertSeverity.INFO]
        )

        return EvaluationResult(
            patient_id=snapshot.patient_id,
            module=resolved,
            rules_evaluated=rules_evaluated,
            findings=findings,
            failed_rules=[failure.to_dict() for failure in failures],
            summary=summary
        )

    def _run(
        self,
        snapshot: PatientClinicalSnapshot,
        module: Optional[ClinicalModule]
    ) -> Tuple[List[CDSSFinding], List[RuleEvaluationError], int]:
        catalog = self._catalog
        rules = [rule for rule in catalog.active_rules if self._in_scope(rule, module)]

        findings: List[CDSSFinding] = []
        failures: List[RuleEvaluationError] = []
        fired = set()

        logger.debug(f"Evaluating {len(rules)} rules for patient {snapshot.patient_id}")

        for rule in rules:
            if rule.id in fired:
                continue

            missing = [name for name in rule.requires if not snapshot.has_extension(name)]
            if missing:
                logger.debug(f"Rule {rule.id} not applicable, missing {missing}")
                continue

            handler = catalog.handler_for(rule.id)
            try:
                if not handler.applies(snapshot):
                    continue
                content = handler.alert(snapshot)
            except Exception as e:
                logger.error(f"Error evaluating rule {rule.id}: {e}", exc_info=True)
                failures.append(RuleEvaluationError(rule.id, e))
                continue

            logger.info(f"Rule {rule.id} triggered ({content.severity.value})")
            fired.add(rule.id)
            findings.append(self._to_finding(rule, content, snapshot))

        # Stable sort keeps catalog order among equal priorities
        findings.sort(key=lambda f: -f.priority)

        if failures:
            logger.warning(f"{len(failures)} of {len(rules)} rules failed to evaluate")
        logger.info(f"Total findings generated: {len(findings)}")
        return findings, failures, len(rules)

    @staticmethod
    def _to_finding(
        rule: CDSSRule,
        content: AlertContent,
        snapshot: PatientClinicalSnapshot
    ) -> CDSSFinding:
        return CDSSFinding(
            rule_id=rule.id,
            title=content.title,
            description=content.message,
            category=content.category,
            priority=int(rule.priority),
            guideline_source=rule.guideline_source,
            severity=content.severity,
            module=rule.module,
            guideline_reference=content.guideline_reference,
            recommendations=list(content.recommendations),
            patient_id=snapshot.patient_id
        )

    # =========================================================================
    # Catalog inspection
    # =========================================================================

    def list_rules(self, module: ModuleInput = None) -> List[RuleSummary]:
        """All catalog rules (active or not) visible under a module filter"""
        resolved = self._resolve_module(module)
        return [
            rule.to_summary()
            for rule in self._catalog.rules
            if self._in_scope(rule, resolved)
        ]

    def active_rule_count(self, module: ModuleInput = None) -> RuleCountSummary:
        """Count active rules by category and module"""
        resolved = self._resolve_module(module)
        rules = [r for r in self._catalog.active_rules if self._in_scope(r, resolved)]

        by_category = Counter(rule.category.value for rule in rules)
        by_module = Counter(rule.module.value if rule.module else "global" for rule in rules)

        return RuleCountSummary(
            total=len(rules),
            by_category=dict(by_category),
            by_module=dict(by_module)
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _resolve_module(module: ModuleInput) -> Optional[ClinicalModule]:
        if module is None:
            return None
        try:
            return ClinicalModule(module)
        except ValueError:
            raise ValidationError(
                f"Unknown clinical module {module!r}",
                field="module",
                allowed=[m.value for m in ClinicalModule]
            )

    @staticmethod
    def _in_scope(rule: CDSSRule, module: Optional[ClinicalModule]) -> bool:
        if module is None or rule.module is None:
            return True
        return rule.module in (module, ClinicalModule.GENERAL)

    @staticmethod
    def _coerce_snapshot(snapshot: SnapshotInput) -> PatientClinicalSnapshot:
        if isinstance(snapshot, PatientClinicalSnapshot):
            return snapshot
        return PatientClinicalSnapshot.model_validate(snapshot)


# =============================================================================
# Public API
# =============================================================================

_default_engine: Optional[ClinicalRulesEngine] = None


def get_rules_engine() -> ClinicalRulesEngine:
    """Shared engine over the default catalog, built on first use"""
    global _default_engine
    if _default_engine is None:
        _default_engine = ClinicalRulesEngine()
    return _default_engine


def evaluate_clinical_rules(
    snapshot: SnapshotInput,
    module: ModuleInput = None
) -> EvaluationResult:
    """
    Evaluate the default guideline catalog for a patient

    Args:
        snapshot: Patient clinical snapshot
        module: Optional module filter

    Returns:
        EvaluationResult with findings, failed rules and severity summary
    """
    return get_rules_engine().evaluate_patient(snapshot, module)
