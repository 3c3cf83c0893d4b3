"""Rule-based compliance evaluation of extracted contract data.

Every enabled rule is checked independently. A failed rule becomes a
deviation and costs points by severity; a single critical deviation fails the
contract whatever the score.
"""

import math
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import dateparser
from loguru import logger

from clauseguard.error_handling import RuleEvaluationError
from clauseguard.models import (
    ComplianceCheckResult,
    ComplianceRule,
    Deviation,
    ExtractedField,
    ExtractionRecord,
    RuleOutcome,
)


SEVERITY_WEIGHTS: Dict[str, int] = {
    "low": 5,
    "medium": 10,
    "high": 20,
    "critical": 30,
}
DEFAULT_WEIGHT = 10
PASS_THRESHOLD = 70
DAYS_PER_MONTH = 30


def _parse_date(field: Optional[ExtractedField]) -> Optional[datetime]:
    if field is None or not field.value:
        return None
    value = str(field.value)
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return dateparser.parse(value)


class ComplianceEngine:
    """Evaluates ComplianceRules against an ExtractionRecord."""

    def __init__(self):
        self._checks: Dict[str, Callable[[ComplianceRule, ExtractionRecord], RuleOutcome]] = {
            "clause_required": self._check_clause_required,
            "clause_forbidden": self._check_clause_forbidden,
            "term_length": self._check_term_length,
            "liability_cap": self._check_liability_cap,
            "value_range": self._check_value_range,
        }

    def evaluate(
        self,
        rules: Sequence[ComplianceRule],
        record: ExtractionRecord
    ) -> ComplianceCheckResult:
        """Check every enabled rule and compute the weighted score.

        Args:
            rules: Organization rules; disabled ones are ignored
            record: Extraction record with structured fields

        Returns:
            ComplianceCheckResult with score in [0, 100]
        """
        enabled = [rule for rule in rules if rule.enabled]

        if not enabled:
            logger.warning("No compliance rules defined, contract trivially complies")
            return ComplianceCheckResult(
                score=100,
                passed=True,
                total_rules=0,
                passed_rules=0,
                failed_rules=0,
                deviations=[]
            )

        deviations: List[Deviation] = []
        passed_count = 0

        for rule in enabled:
            outcome = self.check_rule(rule, record)
            if outcome.passed:
                passed_count += 1
            else:
                deviations.append(Deviation(
                    rule_id=rule.rule_id,
                    rule_name=rule.name,
                    severity=rule.severity,
                    message=outcome.message,
                    recommendation=rule.recommendation,
                    affected_clause=outcome.affected_clause
                ))

        weighted_score = 100
        for deviation in deviations:
            weighted_score -= SEVERITY_WEIGHTS.get(deviation.severity, DEFAULT_WEIGHT)
        score = max(0, min(100, weighted_score))

        has_critical = any(d.severity == "critical" for d in deviations)
        passed = score >= PASS_THRESHOLD and not has_critical

        logger.info(
            "Compliance evaluated",
            score=score,
            passed=passed,
            total_rules=len(enabled),
            deviations=len(deviations)
        )

        return ComplianceCheckResult(
            score=score,
            passed=passed,
            total_rules=len(enabled),
            passed_rules=passed_count,
            failed_rules=len(enabled) - passed_count,
            deviations=deviations
        )

    def check_rule(self, rule: ComplianceRule, record: ExtractionRecord) -> RuleOutcome:
        """Check one rule. Errors never fail a rule."""
        check = self._checks.get(rule.rule_type)
        if check is None:
            return RuleOutcome(passed=True, message="Rule type not implemented")

        try:
            return check(rule, record)
        except Exception as e:
            logger.error(
                f"Error checking rule {rule.name}",
                rule_id=rule.rule_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return RuleOutcome(passed=True, message="Error checking rule")

    def _required_clause_type(self, rule: ComplianceRule) -> str:
        if not rule.config.clause_type:
            raise RuleEvaluationError(f"Rule {rule.name} has no clauseType configured")
        return rule.config.clause_type

    def _find_clause(self, record: ExtractionRecord, needle: str):
        needle = needle.lower()
        for clause in record.clauses:
            if needle in (clause.clause_type or "").lower():
                return clause
        return None

    def _check_clause_required(self, rule: ComplianceRule, record: ExtractionRecord) -> RuleOutcome:
        clause_type = self._required_clause_type(rule)
        found = self._find_clause(record, clause_type)
        if found is not None:
            return RuleOutcome(
                passed=True,
                message=f'Required clause "{clause_type}" found',
                affected_clause=found.title
            )
        return RuleOutcome(passed=False, message=f'Missing required clause: "{clause_type}"')

    def _check_clause_forbidden(self, rule: ComplianceRule, record: ExtractionRecord) -> RuleOutcome:
        clause_type = self._required_clause_type(rule)
        found = self._find_clause(record, clause_type)
        if found is None:
            return RuleOutcome(passed=True, message=f'No forbidden clause "{clause_type}" found')
        return RuleOutcome(
            passed=False,
            message=f'Forbidden clause found: "{clause_type}"',
            affected_clause=found.title
        )

    def _check_term_length(self, rule: ComplianceRule, record: ExtractionRecord) -> RuleOutcome:
        if (
            record.effective_date is None or not record.effective_date.value
            or record.termination_date is None or not record.termination_date.value
        ):
            return RuleOutcome(passed=True, message="Cannot determine contract term length")

        effective = _parse_date(record.effective_date)
        termination = _parse_date(record.termination_date)
        if effective is None or termination is None:
            raise RuleEvaluationError("Contract dates are not parseable")

        months = (termination - effective).total_seconds() / (DAYS_PER_MONTH * 24 * 3600)
        min_months = rule.config.min_value or 0
        max_months = rule.config.max_value or math.inf

        if min_months <= months <= max_months:
            return RuleOutcome(
                passed=True,
                message=f"Contract term ({round(months)} months) within acceptable range"
            )
        max_label = "Infinity" if math.isinf(max_months) else f"{max_months:g}"
        return RuleOutcome(
            passed=False,
            message=(
                f"Contract term ({round(months)} months) outside acceptable range "
                f"({min_months:g}-{max_label} months)"
            )
        )

    def _check_liability_cap(self, rule: ComplianceRule, record: ExtractionRecord) -> RuleOutcome:
        liability_clause = None
        for clause in record.clauses:
            clause_type = (clause.clause_type or "").lower()
            if "liability" in clause_type or "indemnity" in clause_type:
                liability_clause = clause
                break

        if liability_clause is None:
            return RuleOutcome(passed=False, message="No liability/indemnity clause found")

        if "unlimited" in (liability_clause.content or "").lower():
            return RuleOutcome(
                passed=False,
                message="Unlimited liability detected in contract",
                affected_clause=liability_clause.title
            )
        return RuleOutcome(
            passed=True,
            message="Liability clause appears acceptable",
            affected_clause=liability_clause.title
        )

    def _check_value_range(self, rule: ComplianceRule, record: ExtractionRecord) -> RuleOutcome:
        # Documentation check only, never fails
        if not record.amounts:
            return RuleOutcome(passed=True, message="No financial values to check")
        return RuleOutcome(
            passed=True,
            message=f"Found {len(record.amounts)} financial value(s) documented"
        )
