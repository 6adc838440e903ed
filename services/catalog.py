import logging

from sqlalchemy.orm import Session

from queries.catalog import create_item, list_items
from queries.invoices import link_invoice_item, list_invoice_items

log = logging.getLogger("reconciler")

DEFAULT_UNIT = "հատ"


def normalize_name(name: str | None) -> str:
    return (name or "").strip().lower()


def generate_item_code(name: str, existing_codes: set[str]) -> str:
    """
    First three alphanumerics of the name (any script) + 3-digit counter.
    'Cement' -> 'CEM001', then 'CEM002' if taken.
    """
    base = "".join(ch for ch in (name or "") if ch.isalnum())[:3].upper() or "ITM"

    counter = 1
    code = f"{base}{counter:03d}"
    while code in existing_codes:
        counter += 1
        code = f"{base}{counter:03d}"
    return code


def link_invoice_items(db: Session, invoice_id: str) -> dict:
    """
    Resolve every named line of an invoice to a catalog item (exact, case-insensitive,
    trimmed name match), creating the item when nothing matches.
    """
    errors: list[str] = []
    matched = 0
    created = 0

    lines = list_invoice_items(db, invoice_id)
    if not lines:
        return {"matched": 0, "created": 0, "errors": errors}

    by_name = {}
    existing_codes: set[str] = set()
    for item in list_items(db):
        existing_codes.add(item.code)
        by_name.setdefault(normalize_name(item.name), item.id)

    for line in lines:
        key = normalize_name(line.name)
        if not key:
            log.info("invoice %s line %s has no name; skipped", invoice_id, line.seq_no)
            continue

        item_id = by_name.get(key)
        if item_id is not None:
            link_invoice_item(db, line, item_id)
            matched += 1
            continue

        code = generate_item_code(line.name.strip(), existing_codes)
        existing_codes.add(code)
        try:
            item = create_item(db, name=line.name.strip(), code=code, unit=line.unit or DEFAULT_UNIT)
        except Exception as e:
            log.exception("failed creating item %r for invoice %s", line.name, invoice_id)
            errors.append(f"Failed to create item \"{line.name}\": {e}")
            continue

        by_name[key] = item.id
        link_invoice_item(db, line, item.id)
        created += 1
        log.info("created item %s (%s) for %r", item.id, code, line.name)

    return {"matched": matched, "created": created, "errors": errors}
