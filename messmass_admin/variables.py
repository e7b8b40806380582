"""Variable (metric) registry for the KYC admin area.

System variables are seeded from the tables below; stored rows only carry
overrides for them (flags, clicker order, label). Custom variables are
stored in full. ``name`` is the key under which event stats are stored, so
system names never change and custom renames leave old stats in place.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import VariableRuleError

VARIABLE_TYPES = ("numeric", "percentage", "currency", "count", "text")
FLAG_VISIBLE_IN_CLICKER = "visibleInClicker"
FLAG_EDITABLE_IN_MANUAL = "editableInManual"
FLAG_NAMES = (FLAG_VISIBLE_IN_CLICKER, FLAG_EDITABLE_IN_MANUAL)

CUSTOM_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")
FORMULA_REFERENCE_PATTERN = re.compile(r"\[([a-zA-Z0-9_:.]+)\]")

CLICKER_AND_MANUAL_CATEGORIES = {"images", "fans", "demographics", "merchandise"}
MANUAL_ONLY_CATEGORIES = {"moderation", "visits", "event"}

CATEGORY_TEXT_PREFIX = "hashtagsCategory:"
CATEGORY_TEXT_GROUP = "Hashtags by Category"


@dataclass(frozen=True)
class VariableFlags:
    visible_in_clicker: bool = False
    editable_in_manual: bool = False

    def get(self, flag: str) -> bool:
        if flag == FLAG_VISIBLE_IN_CLICKER:
            return self.visible_in_clicker
        if flag == FLAG_EDITABLE_IN_MANUAL:
            return self.editable_in_manual
        raise VariableRuleError(f"Unknown flag: {flag}")

    def with_flag(self, flag: str, value: bool) -> "VariableFlags":
        if flag == FLAG_VISIBLE_IN_CLICKER:
            return replace(self, visible_in_clicker=bool(value))
        if flag == FLAG_EDITABLE_IN_MANUAL:
            return replace(self, editable_in_manual=bool(value))
        raise VariableRuleError(f"Unknown flag: {flag}")

    def to_dict(self) -> Dict[str, bool]:
        return {
            FLAG_VISIBLE_IN_CLICKER: self.visible_in_clicker,
            FLAG_EDITABLE_IN_MANUAL: self.editable_in_manual,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> Optional["VariableFlags"]:
        if not isinstance(payload, Mapping):
            return None
        return cls(
            visible_in_clicker=bool(payload.get(FLAG_VISIBLE_IN_CLICKER)),
            editable_in_manual=bool(payload.get(FLAG_EDITABLE_IN_MANUAL)),
        )


LOCKED_FLAGS = VariableFlags(False, False)


@dataclass(frozen=True)
class VariableDefinition:
    name: str
    label: str
    type: str = "count"
    category: str = ""
    description: str = ""
    derived: bool = False
    formula: Optional[str] = None
    flags: VariableFlags = field(default_factory=VariableFlags)
    clicker_order: Optional[int] = None
    is_custom: bool = False

    def __post_init__(self) -> None:
        if self.type not in VARIABLE_TYPES:
            raise VariableRuleError(f"Invalid variable type: {self.type}")
        if self.derived and not self.formula:
            raise VariableRuleError(f"Derived variable {self.name} needs a formula")
        if not self.derived and self.formula:
            object.__setattr__(self, "formula", None)
        if self.locked:
            object.__setattr__(self, "flags", LOCKED_FLAGS)

    @property
    def locked(self) -> bool:
        """Derived and text variables are never entered by hand."""
        return self.derived or self.type == "text"

    @property
    def in_clicker_reorder(self) -> bool:
        return self.flags.visible_in_clicker and not self.locked

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type,
            "category": self.category,
            "description": self.description,
            "derived": self.derived,
            "formula": self.formula,
            "flags": self.flags.to_dict(),
            "clickerOrder": self.clicker_order,
            "isCustom": self.is_custom,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "VariableDefinition":
        return cls(
            name=str(payload.get("name") or ""),
            label=str(payload.get("label") or payload.get("name") or ""),
            type=str(payload.get("type") or "count"),
            category=str(payload.get("category") or ""),
            description=str(payload.get("description") or ""),
            derived=bool(payload.get("derived")),
            formula=payload.get("formula") or None,
            flags=VariableFlags.from_dict(payload.get("flags")) or VariableFlags(),
            clicker_order=payload.get("clickerOrder"),
            is_custom=bool(payload.get("isCustom")),
        )


def _system(name: str, label: str, category: str, type: str = "count", description: str = "", formula: str | None = None) -> VariableDefinition:
    return VariableDefinition(
        name=name,
        label=label,
        type=type,
        category=category,
        description=description,
        derived=formula is not None,
        formula=formula,
    )


BASE_STATS_VARIABLES: Tuple[VariableDefinition, ...] = (
    _system("remoteImages", "Remote Images", "Images", description="Images taken remotely"),
    _system("hostessImages", "Hostess Images", "Images", description="Images taken by hostesses"),
    _system("selfies", "Selfies", "Images", description="Self-shot images"),
    _system("remoteFans", "Remote", "Fans", description="Indoor + Outdoor (aggregated)"),
    _system("stadium", "Location Fans", "Fans", description="On-site (stadium) fans"),
    _system("female", "Female", "Demographics"),
    _system("male", "Male", "Demographics"),
    _system("genAlpha", "Gen Alpha", "Demographics"),
    _system("genYZ", "Gen Y+Z", "Demographics"),
    _system("genX", "Gen X", "Demographics"),
    _system("boomer", "Boomer", "Demographics"),
    _system("merched", "People with Merch", "Merchandise"),
    _system("jersey", "Jersey", "Merchandise"),
    _system("scarf", "Scarf", "Merchandise"),
    _system("flags", "Flags", "Merchandise"),
    _system("baseballCap", "Baseball Cap", "Merchandise"),
    _system("other", "Other", "Merchandise"),
    _system("approvedImages", "Approved Images", "Moderation"),
    _system("rejectedImages", "Rejected Images", "Moderation"),
    _system("visitQrCode", "QR Code Visits", "Visits"),
    _system("visitShortUrl", "Short URL Visits", "Visits"),
    _system("visitWeb", "Web Visits", "Visits"),
    _system("eventAttendees", "Event Attendees", "Event"),
    _system("eventTicketPurchases", "Ticket Purchases", "Event"),
    _system("eventResultHome", "Event Result Home", "Event"),
    _system("eventResultVisitor", "Event Result Visitor", "Event"),
    _system("eventValuePropositionVisited", "Value Prop Visited", "Event", description="eDM page visits"),
    _system("eventValuePropositionPurchases", "Value Prop Purchases", "Event", description="eDM purchases"),
)

# Stored on older projects instead of remoteFans.
LEGACY_STATS_KEYS = frozenset({"indoor", "outdoor"})

DERIVED_VARIABLES: Tuple[VariableDefinition, ...] = (
    _system("allImages", "Total Images", "Images", description="Sum of Remote, Hostess, and Selfies",
            formula="[remoteImages] + [hostessImages] + [selfies]"),
    _system("totalFans", "Total Fans", "Fans", description="Remote + Stadium",
            formula="[remoteFans] + [stadium]"),
    _system("totalUnder40", "Total Under 40", "Demographics", description="Gen Alpha + Gen YZ",
            formula="[genAlpha] + [genYZ]"),
    _system("totalOver40", "Total Over 40", "Demographics", description="Gen X + Boomer",
            formula="[genX] + [boomer]"),
    _system("approvalRate", "Approval Rate", "Moderation", type="percentage",
            description="Approved share of moderated images",
            formula="[approvedImages] / ([approvedImages] + [rejectedImages]) * 100"),
)

TEXT_VARIABLES_STATIC: Tuple[VariableDefinition, ...] = (
    _system("hashtags", "General Hashtags", "Hashtags", type="text", description="All general hashtags (plain list)"),
)


def category_text_variables(category_names: Iterable[str]) -> List[VariableDefinition]:
    variables = []
    for raw in category_names:
        key = (raw or "").strip()
        if not key:
            continue
        variables.append(
            _system(
                f"{CATEGORY_TEXT_PREFIX}{key}",
                f"Hashtags: {key}",
                CATEGORY_TEXT_GROUP,
                type="text",
                description=f'All hashtags in the "{key}" category',
            )
        )
    return variables


def system_variables(category_names: Iterable[str] = ()) -> List[VariableDefinition]:
    return [
        *BASE_STATS_VARIABLES,
        *DERIVED_VARIABLES,
        *TEXT_VARIABLES_STATIC,
        *category_text_variables(category_names),
    ]


def default_flags_for(variable: VariableDefinition) -> VariableFlags:
    if variable.locked:
        return LOCKED_FLAGS
    category = (variable.category or "").lower()
    if category in CLICKER_AND_MANUAL_CATEGORIES:
        return VariableFlags(True, True)
    if category in MANUAL_ONLY_CATEGORIES:
        return VariableFlags(False, True)
    return VariableFlags(False, True)


def extract_formula_references(formula: str | None) -> List[str]:
    if not formula:
        return []
    seen: List[str] = []
    for match in FORMULA_REFERENCE_PATTERN.finditer(formula):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def validate_custom_name(name: Any) -> str:
    text = str(name or "").strip()
    if len(text) < 2:
        raise VariableRuleError("Invalid name")
    if not CUSTOM_NAME_PATTERN.match(text):
        raise VariableRuleError("Invalid custom variable name format")
    return text


@dataclass
class FlagChange:
    """An optimistic flag edit waiting for the server to confirm it."""

    name: str
    flag: str
    previous: bool
    value: bool
    status: str = "pending"

    def commit(self) -> None:
        self.status = "committed"

    def fail(self) -> None:
        self.status = "failed"


class VariableRegistry:
    def __init__(self, definitions: Iterable[VariableDefinition] = ()) -> None:
        self._by_name: Dict[str, VariableDefinition] = {}
        for definition in definitions:
            self._by_name[definition.name] = definition

    @classmethod
    def from_storage(
        cls,
        rows: Iterable[Mapping[str, Any]],
        category_names: Iterable[str] = (),
    ) -> "VariableRegistry":
        """Merge seeded system variables with stored overrides and custom rows."""
        seeded = system_variables(category_names)
        default_order = {variable.name: index for index, variable in enumerate(seeded)}
        overrides = {str(row["name"]): row for row in rows if row.get("name")}

        merged: List[VariableDefinition] = []
        for variable in seeded:
            row = overrides.get(variable.name)
            flags = _row_flags(row) if row else None
            order = row.get("clicker_order") if row else None
            label = (row.get("label") if row else None) or variable.label
            merged.append(
                replace(
                    variable,
                    label=label,
                    flags=flags or default_flags_for(variable),
                    clicker_order=order if order is not None else default_order[variable.name],
                )
            )

        seeded_names = set(default_order)
        for name, row in overrides.items():
            if name in seeded_names or not row.get("is_custom"):
                continue
            if not (row.get("label") and row.get("type") and row.get("category")):
                continue
            custom = VariableDefinition(
                name=name,
                label=str(row["label"]),
                type=str(row["type"]),
                category=str(row["category"]),
                description=str(row.get("description") or ""),
                derived=bool(row.get("derived")),
                formula=row.get("formula") or None,
                is_custom=True,
            )
            order = row.get("clicker_order")
            merged.append(
                replace(
                    custom,
                    flags=_row_flags(row) or default_flags_for(custom),
                    clicker_order=order,
                )
            )
        return cls(merged)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def get(self, name: str) -> VariableDefinition:
        try:
            return self._by_name[name]
        except KeyError:
            raise VariableRuleError(f"Unknown variable: {name}") from None

    def all(self) -> List[VariableDefinition]:
        return sorted(self._by_name.values(), key=lambda v: (v.category.lower(), v.label.lower()))

    def categories(self) -> List[str]:
        return sorted({v.category for v in self._by_name.values()}, key=str.lower)

    def search(self, query: str) -> List[VariableDefinition]:
        needle = query.strip().lower()
        if not needle:
            return self.all()
        return [
            v
            for v in self.all()
            if needle in v.name.lower()
            or needle in v.label.lower()
            or needle in v.category.lower()
            or needle in (v.description or "").lower()
        ]

    def set_flag(self, name: str, flag: str, value: bool) -> Optional[FlagChange]:
        """Apply a flag locally. Returns None when the variable is locked."""
        if flag not in FLAG_NAMES:
            raise VariableRuleError(f"Unknown flag: {flag}")
        variable = self.get(name)
        if variable.locked:
            return None
        previous = variable.flags.get(flag)
        self._by_name[name] = replace(variable, flags=variable.flags.with_flag(flag, value))
        return FlagChange(name=name, flag=flag, previous=previous, value=bool(value))

    def revert(self, change: FlagChange) -> None:
        change.fail()
        if change.name not in self._by_name:
            return
        variable = self._by_name[change.name]
        if variable.flags.get(change.flag) == change.value:
            self._by_name[change.name] = replace(variable, flags=variable.flags.with_flag(change.flag, change.previous))

    def rename_label(self, name: str, label: str) -> VariableDefinition:
        text = (label or "").strip()
        if not text:
            raise VariableRuleError("Label is required")
        variable = replace(self.get(name), label=text)
        self._by_name[name] = variable
        return variable

    def set_clicker_order(self, name: str, order: Optional[int]) -> VariableDefinition:
        variable = replace(self.get(name), clicker_order=order)
        self._by_name[name] = variable
        return variable

    def rename_identifier(self, name: str, new_name: str) -> VariableDefinition:
        variable = self.get(name)
        if not variable.is_custom:
            raise VariableRuleError(f"System variable {name} cannot be renamed")
        target = validate_custom_name(new_name)
        if target == name:
            return variable
        if target in self._by_name:
            raise VariableRuleError(f"Variable {target} already exists")
        renamed = replace(variable, name=target)
        self._by_name = {
            (target if key == name else key): (renamed if key == name else value)
            for key, value in self._by_name.items()
        }
        return renamed

    def create_custom(self, variable: VariableDefinition, flags: VariableFlags | None = None) -> VariableDefinition:
        name = validate_custom_name(variable.name)
        if name in self._by_name:
            raise VariableRuleError(f"Variable {name} already exists")
        if not variable.category.strip():
            raise VariableRuleError("Category is required")
        if variable.derived:
            self.validate_formula(variable.formula)
        custom = replace(
            variable,
            name=name,
            label=variable.label.strip() or name,
            is_custom=True,
        )
        custom = replace(custom, flags=flags if flags is not None else default_flags_for(custom))
        self._by_name[name] = custom
        return custom

    def delete_custom(self, name: str) -> VariableDefinition:
        variable = self.get(name)
        if not variable.is_custom:
            raise VariableRuleError(f"System variable {name} cannot be deleted")
        del self._by_name[name]
        return variable

    def clicker_candidates(self, category: str) -> List[VariableDefinition]:
        members = [v for v in self._by_name.values() if v.category == category and v.in_clicker_reorder]
        return sorted(
            members,
            key=lambda v: (v.clicker_order if v.clicker_order is not None else float("inf"), v.label.lower()),
        )

    def reorder_within_category(self, category: str, ordered_names: List[str]) -> List[Tuple[str, int]]:
        """Assign ``clicker_order = index``; returns the ranks that changed."""
        participants = {v.name for v in self.clicker_candidates(category)}
        unknown = [name for name in ordered_names if name not in participants]
        if unknown:
            raise VariableRuleError(f"Not reorderable in {category}: {', '.join(unknown)}")
        if len(set(ordered_names)) != len(ordered_names):
            raise VariableRuleError("Duplicate names in reorder list")
        changed: List[Tuple[str, int]] = []
        for index, name in enumerate(ordered_names):
            variable = self._by_name[name]
            if variable.clicker_order != index:
                self._by_name[name] = replace(variable, clicker_order=index)
                changed.append((name, index))
        return changed

    def validate_formula(self, formula: str | None) -> List[str]:
        references = extract_formula_references(formula)
        if not references:
            raise VariableRuleError("Formula must reference at least one variable, e.g. [remoteImages]")
        unknown = [name for name in references if name not in self._by_name]
        if unknown:
            raise VariableRuleError(f"Unknown variables in formula: {', '.join(unknown)}")
        return references

    def unknown_stats_keys(self, stats: Mapping[str, Any]) -> List[str]:
        return sorted(key for key in stats if key not in self._by_name and key not in LEGACY_STATS_KEYS)


def _row_flags(row: Mapping[str, Any] | None) -> Optional[VariableFlags]:
    if not row:
        return None
    visible = row.get("visible_in_clicker")
    editable = row.get("editable_in_manual")
    if visible is None and editable is None:
        return None
    return VariableFlags(bool(visible), bool(editable))


def variable_row(variable: VariableDefinition) -> Dict[str, Any]:
    """Column values for persisting a definition."""
    data = asdict(variable)
    flags = data.pop("flags")
    data["visible_in_clicker"] = flags["visible_in_clicker"]
    data["editable_in_manual"] = flags["editable_in_manual"]
    return data
