"""
Aggregazione delle ordinazioni per tavolo
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Funzione pura: stesso input, stesso output, nessun accesso al database.

Ordine dei gruppi, che ricalca la disposizione della sala:
T1-T7, M1-M7, 11-16, 21-26, 31-36, P1-P4, altri tavoli,
infine le ordinazioni senza tavolo (asporto/banco).
"""

import re
from datetime import datetime, timezone
from typing import Iterable, Optional

from cassa.schemas.order import OrderRead, TableGroup

_TABLE_KEY = re.compile(r"^([TMP])?(\d+)$")

# (prefisso, numero minimo, numero massimo, fascia)
_BANDS = (
    ("T", 1, 7, 1),
    ("M", 1, 7, 2),
    ("", 11, 16, 3),
    ("", 21, 26, 4),
    ("", 31, 36, 5),
    ("P", 1, 4, 6),
)
_OTHER_TABLE_BAND = 7
_UNMATCHED_BAND = 8
_NO_TABLE_BAND = 9


def table_sort_key(table_key: Optional[str]) -> tuple[int, int, str]:
    """
    Chiave di ordinamento di un tavolo: (fascia, numero, chiave).

    Le chiavi che non seguono lo schema [T|M|P]<numero> vanno dopo
    tutti i tavoli riconosciuti; None (nessun tavolo) va in fondo.
    """
    if table_key is None:
        return (_NO_TABLE_BAND, 0, "")

    match = _TABLE_KEY.match(table_key.strip().upper())
    if not match:
        return (_UNMATCHED_BAND, 0, table_key)

    prefix, number = match.group(1) or "", int(match.group(2))
    for band_prefix, low, high, band in _BANDS:
        if prefix == band_prefix and low <= number <= high:
            return (band, number, table_key)
    return (_OTHER_TABLE_BAND, number, table_key)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _order_sort_key(order: OrderRead) -> tuple[datetime, int, str]:
    return (_as_utc(order.opened_at), order.numero, str(order.id))


def compute_table_groups(orders: Iterable[OrderRead]) -> list[TableGroup]:
    """
    Raggruppa le ordinazioni per tavolo e ne calcola i totali.

    Le ordinazioni senza tavolo diventano gruppi singoli con chiave
    "ordine-<id>". I nomi cliente sono distinti e in ordine di apertura.

    Args:
        orders: Ordinazioni da raggruppare

    Returns:
        Gruppi in ordine deterministico
    """
    buckets: dict[str, list[OrderRead]] = {}
    for order in orders:
        key = order.table_key if order.table_key else f"ordine-{order.id}"
        buckets.setdefault(key, []).append(order)

    groups: list[TableGroup] = []
    for key, members in buckets.items():
        members = sorted(members, key=_order_sort_key)
        names: list[str] = []
        for order in members:
            if order.customer_name and order.customer_name not in names:
                names.append(order.customer_name)
        table_key = members[0].table_key
        groups.append(
            TableGroup(
                key=key,
                table_key=table_key,
                is_table=table_key is not None,
                orders=members,
                total_cents=sum(o.total_cents for o in members),
                paid_cents=sum(o.paid_cents for o in members),
                remaining_cents=sum(o.remaining_cents for o in members),
                customer_names=names,
                first_opened_at=members[0].opened_at,
            )
        )

    def group_sort_key(group: TableGroup):
        band, number, label = table_sort_key(group.table_key)
        if group.table_key is None:
            # Asporto/banco: in ordine di apertura
            first = group.orders[0]
            return (band, 0, "", _as_utc(first.opened_at), first.numero)
        return (band, number, label, datetime.min.replace(tzinfo=timezone.utc), 0)

    return sorted(groups, key=group_sort_key)
