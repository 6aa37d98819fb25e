"""Column discovery and per-sheet key selection."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PAYOR_AGREEMENT_CODE = "PAYORAGREECODE"
BILLING_GROUP_CODE = "BILLINGGROUPCODE"
ORDER_ITEM_CODE = "ORDERITEMCODE"


def normalize_cell(value: object) -> str:
    """Return *value* as trimmed text, ``""`` for ``None``."""
    if value is None:
        return ""
    return str(value).strip()


def _normalize_header_name(name: object) -> str:
    return normalize_cell(name).upper()


# ── ColumnResolver ───────────────────────────────────────────────


def resolve_column(header: Sequence[object], target: str) -> int | None:
    """Return the index of the first header cell containing *target*.

    Both sides are upper-cased and trimmed before a substring test, so
    ``"SurchargeMultiplier (x)"`` matches ``"SURCHARGEMULTIPLIER"``.  Returns
    ``None`` when nothing matches; blank header cells never match.
    """
    wanted = _normalize_header_name(target)
    if not wanted:
        return None
    for idx, cell in enumerate(header):
        name = _normalize_header_name(cell)
        if name and wanted in name:
            return idx
    return None


# ── KeyStrategy ──────────────────────────────────────────────────


@dataclass(frozen=True)
class KeyRule:
    """Sheets whose lower-cased name contains any of *patterns* use these keys."""

    patterns: tuple[str, ...]
    key1: str
    key2: str

    def matches(self, sheet_name: str) -> bool:
        lowered = sheet_name.lower()
        return any(pattern.lower() in lowered for pattern in self.patterns)


DEFAULT_KEY_RULES: tuple[KeyRule, ...] = (
    KeyRule(("groupsurcharge",), PAYOR_AGREEMENT_CODE, BILLING_GROUP_CODE),
    KeyRule(("itemlevelsurcharge", "itemsurcharge"), PAYOR_AGREEMENT_CODE, ORDER_ITEM_CODE),
)


@dataclass(frozen=True)
class KeyColumns:
    """Resolved key columns for one sheet."""

    key1_name: str
    key2_name: str
    key1_index: int
    key2_index: int


def select_keys(
    sheet_name: str, rules: Iterable[KeyRule] = DEFAULT_KEY_RULES
) -> tuple[str, str] | None:
    """Return the two key column names for *sheet_name*, or ``None`` if unsupported.

    Rules are evaluated in order and the first match wins.
    """
    for rule in rules:
        if rule.matches(sheet_name):
            return rule.key1, rule.key2
    return None


def resolve_key_columns(
    sheet_name: str,
    header: Sequence[object],
    rules: Iterable[KeyRule] = DEFAULT_KEY_RULES,
) -> KeyColumns | None:
    """Select the key names for *sheet_name* and locate them in *header*."""
    names = select_keys(sheet_name, rules)
    if names is None:
        logger.debug("Sheet %r matches no key rule; skipping", sheet_name)
        return None

    key1_name, key2_name = names
    key1_index = resolve_column(header, key1_name)
    key2_index = resolve_column(header, key2_name)
    if key1_index is None or key2_index is None:
        logger.warning(
            "Required key columns %s/%s not found in sheet %r; skipping",
            key1_name,
            key2_name,
            sheet_name,
        )
        return None
    return KeyColumns(key1_name, key2_name, key1_index, key2_index)


# ── Profiles ─────────────────────────────────────────────────────


_RULE_LINE_RE = re.compile(r"^(?P<pattern>[^=]+)=(?P<key1>[^,]+),(?P<key2>[^,]+)$")


def parse_key_rules(lines: Iterable[str]) -> list[KeyRule]:
    """Parse ``sheet_pattern=KEY1,KEY2`` lines into key rules.

    Blank lines and ``#`` comments are ignored.
    """
    rules: list[KeyRule] = []
    for raw in lines:
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _RULE_LINE_RE.match(stripped)
        if match is None:
            raise ValueError(
                f"Invalid key rule: {stripped!r}  (expected sheet_pattern=KEY1,KEY2)"
            )
        pattern = match.group("pattern").strip()
        key1 = match.group("key1").strip()
        key2 = match.group("key2").strip()
        if not pattern or not key1 or not key2:
            raise ValueError(f"Key rule entries must be non-empty: {stripped!r}")
        rules.append(KeyRule((pattern,), key1, key2))
    return rules


def load_key_rules(profile: Path | None) -> list[KeyRule]:
    """Return the key rules declared in *profile* (empty when no profile)."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(
            f"Profile not found: {profile} (expected lines like groupsurcharge=KEY1,KEY2)"
        )
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc
    return parse_key_rules(text.splitlines())
