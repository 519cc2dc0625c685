# listas/extraction/item_extractor.py
from __future__ import annotations

from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from reconciliation.contracts import Coordinates, RawItem, SupplyItem

from ..config import ITEM_EXTRACTOR_TIMEOUT_SECS, ITEM_EXTRACTOR_URL


def parse_raw_items(payload: Any) -> tuple[List[RawItem], List[str]]:
    """
    Validate the extractor's response. Accepts {"productos": [...]} or a bare
    list. Items that fail validation are dropped and reported as warnings.
    """
    if isinstance(payload, dict):
        rows = payload.get("productos") or payload.get("items") or []
    elif isinstance(payload, list):
        rows = payload
    else:
        rows = []

    items: List[RawItem] = []
    warnings: List[str] = []
    for i, row in enumerate(rows):
        try:
            items.append(RawItem.model_validate(row))
        except ValidationError as e:
            warnings.append(f"Skipped extracted item #{i + 1}: {e.errors()[0].get('msg')}")
    return items, warnings


def extract_items(
    pdf_bytes: bytes,
    filename: str = "lista.pdf",
    url: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> tuple[List[RawItem], List[str]]:
    """
    Send a PDF to the AI extraction service and return its items.
    Transport and HTTP errors propagate to the caller.
    """
    endpoint = url or ITEM_EXTRACTOR_URL
    if not endpoint:
        raise RuntimeError("ITEM_EXTRACTOR_URL is not set.")

    files = {"file": (filename, pdf_bytes, "application/pdf")}
    if client is not None:
        resp = client.post(endpoint, files=files)
    else:
        with httpx.Client(timeout=ITEM_EXTRACTOR_TIMEOUT_SECS) as c:
            resp = c.post(endpoint, files=files)
    resp.raise_for_status()
    return parse_raw_items(resp.json())


def to_supply_item(raw: RawItem, coordinates: Optional[Coordinates] = None) -> SupplyItem:
    return SupplyItem(
        name=raw.nombre.strip(),
        quantity=raw.cantidad,
        isbn=raw.isbn,
        brand=raw.marca,
        to_purchase=raw.comprar,
        price=raw.precio,
        subject=raw.asignatura,
        description=raw.descripcion,
        coordinates=coordinates,
        approved=False,
    )
