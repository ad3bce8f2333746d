# app/domain/options.py
"""Normalized item customizations.

Stored shape: ``{group_key: [{id, name, price, price_cents, quantity}], "__meta__": {...}}``.
Every other ``__``-prefixed key (``__assignment__`` in particular) is dropped:
ownership lives in the row columns, never in the options blob.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

META_KEY = "__meta__"
ROOT_KEY = "__root__"


def _as_list(value) -> list:
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def _cents(value) -> int | None:
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (ArithmeticError, ValueError, TypeError):
        return None


def _dollars_to_cents(value) -> int | None:
    try:
        return _cents(Decimal(str(value)) * 100)
    except (ArithmeticError, ValueError, TypeError):
        return None


def strip_internal_keys(selections: Any) -> dict:
    if not isinstance(selections, dict):
        return {}
    return {k: v for k, v in selections.items() if not str(k).startswith("__") or k == META_KEY}


def _option_record(group: dict | None, raw: Any) -> dict:
    raw_obj = raw if isinstance(raw, dict) else {}
    candidate = raw_obj.get("id", raw_obj.get("optionId", raw_obj.get("value")))
    if candidate is None and isinstance(raw, str):
        candidate = raw

    option = None
    for opt in (group or {}).get("options") or []:
        opt_id = opt.get("id", opt.get("value", opt.get("optionId")))
        if opt_id is not None and str(opt_id) == str(candidate):
            option = opt
            break
    option = option or {}

    name = (
        option.get("name")
        or option.get("label")
        or raw_obj.get("name")
        or raw_obj.get("label")
        or (candidate if isinstance(candidate, str) else "Option")
    )

    price_cents = 0
    for source, key, convert in (
        (option, "price_cents", _cents),
        (option, "price", _dollars_to_cents),
        (raw_obj, "price_cents", _cents),
        (raw_obj, "price", _dollars_to_cents),
    ):
        if source.get(key) is not None:
            converted = convert(source[key])
            if converted is not None:
                price_cents = converted
                break

    quantity = 1
    for source in (option, raw_obj):
        converted = _cents(source.get("quantity")) if source.get("quantity") is not None else None
        if converted is not None:
            quantity = max(1, converted)
            break

    return {
        "id": str(candidate) if candidate is not None else None,
        "name": name,
        "price": float(Decimal(price_cents) / 100),
        "price_cents": price_cents,
        "quantity": quantity,
    }


def normalize_selected_options(selections: Any, catalog: list | None = None) -> dict:
    """Normalize raw option selections against an optional menu option catalog."""
    if isinstance(selections, list):
        return _normalize_groups({ROOT_KEY: list(selections)}, catalog)

    selections = strip_internal_keys(selections)
    if selections.get(META_KEY):
        # already normalized upstream
        return {
            key: value if key == META_KEY else [dict(e) if isinstance(e, dict) else e for e in _as_list(value)]
            for key, value in selections.items()
        }
    return _normalize_groups(
        {key: _as_list(value) for key, value in selections.items() if key != META_KEY}, catalog
    )


def _normalize_groups(payload: dict, catalog: list | None) -> dict:
    groups = {}
    for group in catalog or []:
        if not group:
            continue
        key = group.get("id", group.get("name"))
        if key is not None:
            groups[str(key)] = group

    meta = {}
    for key in list(payload):
        if key == ROOT_KEY:
            continue
        group = groups.get(str(key))
        records = [_option_record(group, entry) for entry in payload[key]]
        if records:
            payload[key] = records
            meta[key] = {
                "id": (group or {}).get("id", key),
                "name": (group or {}).get("name", key),
                "options": [
                    {"optionId": r["id"], "name": r["name"], "priceCents": r["price_cents"], "quantity": r["quantity"]}
                    for r in records
                ],
            }
    if meta:
        payload[META_KEY] = meta
    return payload


def options_total_cents(selected_options: dict) -> int:
    total = 0
    for key, records in (selected_options or {}).items():
        if str(key).startswith("__"):
            continue
        for record in _as_list(records):
            if isinstance(record, dict):
                total += int(record.get("price_cents") or 0) * int(record.get("quantity") or 1)
    return total
