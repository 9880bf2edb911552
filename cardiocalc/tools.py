"""Tool definitions and handlers for calling the risk calculators by id."""

from __future__ import annotations

import logging
import typing
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .calculators import CALCULATORS, CalculatorInputError
from .models import CalcInfoResult, ExecuteCalcResult

logger = logging.getLogger(__name__)

# Tool definitions for function-calling clients
TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "calc_info",
            "description": (
                "Get the input schema for a cardiology risk calculator. "
                "Returns field names, types, units, and constraints needed for execute_calc."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "calc_id": {
                        "type": "string",
                        "description": "Calculator ID (e.g., ascvd, cha2ds2_vasc, has_bled, grace)",
                    },
                },
                "required": ["calc_id"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "execute_calc",
            "description": (
                "Execute a risk calculation with patient variables. "
                "Returns the risk score result or validation errors."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "calc_id": {
                        "type": "string",
                        "description": "Calculator ID",
                    },
                    "variables": {
                        "type": "object",
                        "description": (
                            "Variables as key-value pairs. "
                            "For numeric inputs with units: {\"value\": number, \"unit\": string}. "
                            "For booleans: true/false. For enums: string value."
                        ),
                    },
                },
                "required": ["calc_id", "variables"],
            },
        },
    },
]


# ── Unit conversion ─────────────────────────────────────────────────────────

_UNIT_CONVERSIONS: Dict[str, Dict[str, float]] = {
    "cholesterol":   {"mmol/l": 38.67},
    "triglycerides": {"mmol/l": 88.57},
    "creatinine":    {"µmol/l": 1/88.4, "umol/l": 1/88.4, "μmol/l": 1/88.4, "micromol/l": 1/88.4},
    "pressure":      {"kpa": 7.50062},
}


def _convert(raw: Any, canonical_unit: str, analyte: str,
             warnings: List[str], field_id: str) -> Tuple[Any, str]:
    """Unwrap a variable and convert it to the canonical unit if needed.

    Handles:
      - raw values or {"value": N} → returned as-is
      - {"value": N, "unit": U} → converted if U differs from canonical
    Unknown units are passed through and reported in `warnings`.
    Raises ValueError when the unit is not a string.
    """
    if not isinstance(raw, dict):
        return raw, canonical_unit

    val = raw.get("value")
    unit = raw.get("unit")
    if unit is None:
        unit = ""
    elif not isinstance(unit, str):
        raise ValueError(f"{field_id}: unit must be a string, got {unit!r}")
    unit = unit.strip()
    if not unit or val is None or isinstance(val, bool):
        return val, canonical_unit

    # Already in canonical unit
    if unit.lower() == canonical_unit.lower():
        return val, canonical_unit

    factor = _UNIT_CONVERSIONS.get(analyte, {}).get(unit.lower())
    if factor is not None:
        try:
            return float(val) * factor, canonical_unit
        except (TypeError, ValueError):
            return val, unit

    warnings.append(f"Unknown unit '{unit}' for {field_id}; value used as {canonical_unit or 'given'}")
    return val, unit


# ── Schema description ──────────────────────────────────────────────────────

def _field_type(annotation: Any) -> Tuple[str, List[str]]:
    """Map a model field annotation to a calc_info type and its enum values."""
    args = [a for a in typing.get_args(annotation) if a is not type(None)]
    if args:
        annotation = args[0]
    if isinstance(annotation, type) and issubclass(annotation, Enum):
        return "enum", [m.value for m in annotation]
    if annotation is bool:
        return "bool", []
    if annotation is int:
        return "int", []
    return "number", []


def _field_constraints(field_info: Any) -> Dict[str, Any]:
    constraints: Dict[str, Any] = {}
    for meta in field_info.metadata:
        for attr, key in (("ge", "min"), ("gt", "min_exclusive"), ("le", "max"), ("lt", "max_exclusive")):
            bound = getattr(meta, attr, None)
            if bound is not None:
                constraints[key] = bound
    return constraints


def _describe_inputs(calc_id: str) -> List[Dict[str, Any]]:
    inputs = []
    entry = CALCULATORS[calc_id]
    for group, model in entry["inputs"].items():
        group_optional = group in entry["optional"]
        for field_name, field_info in model.model_fields.items():
            extra = field_info.json_schema_extra or {}
            inp_type, enum_values = _field_type(field_info.annotation)
            desc = {
                "id": field_name,
                "label": field_info.description or field_name,
                "type": inp_type,
                "required": field_info.is_required() and not group_optional,
                "canonical_unit": extra.get("unit", ""),
                "synonyms": extra.get("synonyms", []),
                "constraints": _field_constraints(field_info),
                "group": group,
            }
            if enum_values:
                desc["enum_values"] = enum_values
            if field_info.alias:
                desc["alias"] = field_info.alias
            inputs.append(desc)
    return inputs


def _format_validation_error(group: str, exc: ValidationError) -> List[str]:
    msgs = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or group
        msgs.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return msgs


class ToolHandler:
    """
    Handles tool execution for calculator clients.

    Enforces the rule that calc_info must be called before execute_calc, so
    callers always see the exact field ids and units first.
    """

    def __init__(self):
        self._calc_info_cache: Dict[str, CalcInfoResult] = {}
        self._session_calc_info_calls: set[str] = set()
        self._calculator_list_cache: List[Dict[str, str]] = []

    def reset_session(self):
        """Reset session state (called when starting a new conversation)."""
        self._session_calc_info_calls.clear()

    def has_calc_info(self, calc_id: str) -> bool:
        """Check if calc_info was called for this calculator in current session."""
        return self._resolve_calc_id(calc_id) in self._session_calc_info_calls

    def get_cached_calc_info(self, calc_id: str) -> Optional[CalcInfoResult]:
        return self._calc_info_cache.get(self._resolve_calc_id(calc_id))

    def list_calculators(self) -> List[Dict[str, str]]:
        """List available calculators."""
        self._calculator_list_cache = [
            {
                "id": cid,
                "title": c["def"].title,
                "description": c["def"].description,
                "version": c["def"].version,
            }
            for cid, c in CALCULATORS.items()
        ]
        return self._calculator_list_cache

    def _resolve_calc_id(self, input_id: str) -> str:
        """
        Resolve a potentially malformed calculator ID to a valid one.
        Handles case-insensitive matches and '-' in place of '_'.
        """
        if input_id in CALCULATORS:
            return input_id
        normalised = input_id.strip().lower().replace("-", "_")
        for cid in CALCULATORS:
            if cid.lower() == normalised:
                return cid
        # Return original and let it fail downstream if invalid
        return input_id

    def calc_info(self, calc_id: str) -> CalcInfoResult:
        """
        Get calculator input schema.

        Raises ValueError for an unknown calculator.
        """
        calc_id = self._resolve_calc_id(calc_id)
        if calc_id not in CALCULATORS:
            raise ValueError(f"Calculator '{calc_id}' not found")

        calc_def = CALCULATORS[calc_id]["def"]
        result = CalcInfoResult(
            calc_id=calc_id,
            title=calc_def.title,
            description=calc_def.description,
            version=calc_def.version,
            tags=calc_def.tags,
            inputs=_describe_inputs(calc_id),
        )

        # Cache and mark as called
        self._calc_info_cache[calc_id] = result
        self._session_calc_info_calls.add(calc_id)
        return result

    def execute_calc(self, calc_id: str, variables: Dict[str, Any]) -> ExecuteCalcResult:
        """
        Execute calculation with patient variables.

        Enforces that calc_info must be called first for this calculator.

        Args:
            calc_id: Calculator ID
            variables: {field_id: value or {"value": ..., "unit": ...}};
                field ids may be given in snake_case or camelCase

        Returns:
            ExecuteCalcResult with the calculator result under outputs["result"]
            (plus any extra outputs the calculator reports),
            or errors
        """
        resolved_id = self._resolve_calc_id(calc_id)
        if resolved_id not in CALCULATORS:
            return ExecuteCalcResult(success=False, errors=[f"Calculator '{calc_id}' not found"])

        # Enforce calc_info requirement
        if not self.has_calc_info(resolved_id):
            return ExecuteCalcResult(
                success=False,
                errors=[
                    f"calc_info must be called for '{resolved_id}' before execute_calc. "
                    "Call calc_info first to get the input schema."
                ],
            )

        entry = CALCULATORS[resolved_id]
        warnings: List[str] = []
        errors: List[str] = []

        if not isinstance(variables, dict):
            return ExecuteCalcResult(success=False, errors=["variables must be an object"])

        # field id or alias -> (group, field name, field info)
        field_map: Dict[str, Tuple[str, str, Any]] = {}
        for group, model in entry["inputs"].items():
            for field_name, field_info in model.model_fields.items():
                field_map[field_name] = (group, field_name, field_info)
                if field_info.alias:
                    field_map[field_info.alias] = (group, field_name, field_info)

        payloads: Dict[str, Dict[str, Any]] = {group: {} for group in entry["inputs"]}
        inputs_used: Dict[str, str] = {}
        for field_id, value_obj in variables.items():
            if field_id not in field_map:
                warnings.append(f"Unrecognised field ignored: {field_id}")
                continue
            group, field_name, field_info = field_map[field_id]
            extra = field_info.json_schema_extra or {}
            try:
                value, unit = _convert(value_obj, extra.get("unit", ""), extra.get("analyte", ""),
                                       warnings, field_name)
            except ValueError as e:
                errors.append(str(e))
                continue
            payloads[group][field_name] = value
            inputs_used[field_name] = f"{value} {unit}".strip()

        kwargs: Dict[str, Any] = {}
        for group, model in entry["inputs"].items():
            if group in entry["optional"] and not payloads[group]:
                kwargs[group] = None
                continue
            try:
                kwargs[group] = model.model_validate(payloads[group])
            except ValidationError as e:
                errors.extend(_format_validation_error(group, e))

        if errors:
            logger.warning(f"Invalid input for {resolved_id}: {errors}")
            return ExecuteCalcResult(success=False, errors=errors, warnings=warnings)

        try:
            if entry["check"] is not None:
                entry["check"](**kwargs)
            result = entry["run"](**kwargs)
            outputs = {"result": result.model_dump(mode="json")}
            if entry["extra_outputs"] is not None:
                outputs.update(entry["extra_outputs"](**kwargs))
        except CalculatorInputError as e:
            logger.info(f"{resolved_id} rejected input: {e}")
            return ExecuteCalcResult(success=False, errors=[str(e)], warnings=warnings)
        except Exception as e:
            logger.exception(f"Calculation failed for {resolved_id}")
            return ExecuteCalcResult(
                success=False,
                errors=[f"Calculation failed: {e}"],
                warnings=warnings,
            )

        return ExecuteCalcResult(
            success=True,
            outputs=outputs,
            warnings=warnings,
            audit_trace={
                "inputs_used": inputs_used,
                "log": [f"Computed {entry['def'].title}."],
            },
        )

    def execute_tool(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute a tool by name and return the result as a dict.

        This is the main entry point for tool execution from a client.
        """
        if tool_name == "calc_info":
            calc_id = arguments.get("calc_id")
            if not calc_id:
                return {"error": "Missing required parameter: calc_id"}
            try:
                return self.calc_info(calc_id).model_dump()
            except ValueError as e:
                return {"error": str(e)}

        elif tool_name == "execute_calc":
            calc_id = arguments.get("calc_id")
            variables = arguments.get("variables", {})
            if not calc_id:
                return {"error": "Missing required parameter: calc_id"}
            return self.execute_calc(calc_id, variables).model_dump()

        else:
            return {"error": f"Unknown tool: {tool_name}"}


def format_calc_info(calc_info: CalcInfoResult) -> str:
    """Format calculator info as a readable list of inputs."""
    lines = [
        f"Calculator: {calc_info.title} ({calc_info.calc_id})",
        "",
        "Inputs:",
    ]

    for inp in calc_info.inputs:
        inp_id = inp.get("id", "unknown")
        label = inp.get("label", inp_id)
        inp_type = inp.get("type", "number")
        unit = inp.get("canonical_unit", "")
        synonyms = inp.get("synonyms", [])
        constraints = inp.get("constraints", {})

        req_marker = "*" if inp.get("required", False) else ""
        unit_str = f" (default_unit: {unit})" if unit else ""

        line = f"  - {inp_id}{req_marker}: {label}{unit_str} [{inp_type}]"

        if inp.get("enum_values"):
            line += f" one of: {', '.join(inp['enum_values'])}"
        if synonyms:
            line += f" (also known as: {', '.join(synonyms)})"
        if "min" in constraints:
            line += f" min={constraints['min']}"
        if "max" in constraints:
            line += f" max={constraints['max']}"

        lines.append(line)

    return "\n".join(lines)
