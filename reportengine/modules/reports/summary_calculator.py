"""
Summary Calculator

Evaluates a report's stored summary script against its row set. The script
is declarative JSON: an ordered object mapping each total name to an
aggregation, for example

    {
        "sum_total": {"op": "sum", "field": "total"},
        "paid_total": {"op": "sum", "field": "total", "where": "status == 'PAID'"},
        "by_method": {"op": "count", "group_by": "payment_method"},
        "unpaid_total": {"op": "expr", "expr": "sum_total - paid_total"}
    }

Row predicates and "expr" totals go through FormulaEvaluator, so a script can
read values but never reach the host. Any failure is logged and downgraded to
empty totals: a broken script must not stop the rows from being exported.
"""
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

from reportengine.modules.logger import error, warning
from reportengine.modules.reports.formula_evaluator import FormulaEvaluator
from reportengine.modules.reports.report_errors import SummaryCalculationError
from reportengine.modules.reports.report_models import ReportDefinition

FIELD_OPS = ("sum", "avg", "min", "max", "count_distinct")
AGGREGATE_OPS = FIELD_OPS + ("count",)
SUPPORTED_OPS = AGGREGATE_OPS + ("expr",)


def _to_number(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"'{value}' is not numeric") from exc


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _group_key(value: Any) -> str:
    return "" if value is None else str(value)


class SummaryCalculator:
    """Computes the totals mapping for a report run."""

    def summarize(self, definition: ReportDefinition, rows: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        script = (definition.summary_calculations or "").strip()
        if not script:
            return {}
        try:
            return self.evaluate_script(script, rows)
        except SummaryCalculationError as exc:
            error(f"[SummaryCalculator] Summary calculation failed for report '{definition.code}': {exc.message}")
            return {}
        except Exception as exc:
            error(f"[SummaryCalculator] Unexpected summary failure for report '{definition.code}': {exc!r}")
            return {}

    def evaluate_script(self, script: str, rows: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Evaluate a script and return its totals.

        Raises:
            SummaryCalculationError: for invalid scripts and evaluation failures
        """
        entries = self._parse_script(script)
        # Fresh evaluator and contexts per call; nothing is shared between runs
        evaluator = FormulaEvaluator()
        contexts = [{str(key).upper(): value for key, value in row.items()} for row in rows]
        totals: Dict[str, Any] = {}
        for name, entry in entries.items():
            try:
                totals[name] = self._evaluate_entry(evaluator, entry, contexts, totals)
            except SummaryCalculationError:
                raise
            except Exception as exc:
                raise SummaryCalculationError(
                    f"Total '{name}' could not be calculated: {exc}",
                    details={"total": name},
                ) from exc
        return totals

    def _parse_script(self, script: str) -> Dict[str, Dict[str, Any]]:
        try:
            entries = json.loads(script)
        except json.JSONDecodeError as exc:
            raise SummaryCalculationError(f"Summary script is not valid JSON: {exc.msg}") from exc
        except (ValueError, RecursionError) as exc:
            raise SummaryCalculationError(f"Summary script could not be parsed: {exc}") from exc
        if not isinstance(entries, dict):
            raise SummaryCalculationError("Summary script must be a JSON object of named totals")

        for name, entry in entries.items():
            if not isinstance(entry, dict):
                raise SummaryCalculationError(f"Total '{name}' must be an object", details={"total": name})
            op = str(entry.get("op", "")).lower()
            if op not in SUPPORTED_OPS:
                raise SummaryCalculationError(f"Total '{name}' uses unsupported op '{entry.get('op')}'", details={"total": name})
            if op in FIELD_OPS and not entry.get("field"):
                raise SummaryCalculationError(f"Total '{name}' requires a 'field'", details={"total": name})
            if op == "expr" and not entry.get("expr"):
                raise SummaryCalculationError(f"Total '{name}' requires an 'expr'", details={"total": name})
            if "group_by" in entry and op == "expr":
                raise SummaryCalculationError(f"Total '{name}' cannot group an expression", details={"total": name})
        return entries

    def _evaluate_entry(
        self,
        evaluator: FormulaEvaluator,
        entry: Dict[str, Any],
        contexts: List[Dict[str, Any]],
        totals: Dict[str, Any],
    ) -> Any:
        op = str(entry["op"]).lower()
        digits = entry.get("round")

        if op == "expr":
            totals_context = {str(key).upper(): value for key, value in totals.items()}
            return self._round(evaluator.evaluate(str(entry["expr"]), totals_context), digits)

        predicate = evaluator.compile(entry.get("where"))
        selected = [ctx for ctx in contexts if predicate is None or evaluator.evaluate(predicate, ctx)]
        field = str(entry["field"]).upper() if entry.get("field") else None

        group_by = entry.get("group_by")
        if not group_by:
            return self._round(self._aggregate(op, field, selected), digits)

        group_field = str(group_by).upper()
        groups: Dict[str, List[Dict[str, Any]]] = {}
        for ctx in selected:
            groups.setdefault(_group_key(ctx.get(group_field)), []).append(ctx)
        return {key: self._round(self._aggregate(op, field, members), digits) for key, members in groups.items()}

    def _aggregate(self, op: str, field: Optional[str], contexts: List[Dict[str, Any]]) -> Any:
        if op == "count":
            if field is None:
                return len(contexts)
            return sum(1 for ctx in contexts if not _is_missing(ctx.get(field)))

        values = [ctx.get(field) for ctx in contexts if not _is_missing(ctx.get(field))]
        if op == "count_distinct":
            return len(set(values))
        if op == "sum":
            return sum((_to_number(value) for value in values), Decimal(0))
        if op == "avg":
            if not values:
                return None
            return sum((_to_number(value) for value in values), Decimal(0)) / len(values)

        # min / max compare numerically when every value is numeric
        if not values:
            return None
        try:
            comparable = [_to_number(value) for value in values]
        except ValueError:
            comparable = values
        return min(comparable) if op == "min" else max(comparable)

    def _round(self, value: Any, digits: Any) -> Any:
        if digits is None or value is None:
            return value
        try:
            places = int(digits)
        except (TypeError, ValueError):
            warning(f"[SummaryCalculator] Ignoring invalid round value '{digits}'")
            return value
        if isinstance(value, (Decimal, int, float)) and not isinstance(value, bool):
            return round(_to_number(value), places)
        return value
