"""
Eventi real-time della cassa
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Unione chiusa di eventi discriminata dal campo "type". Il canale push
può usare chiavi camelCase (orderId, debtId, ...): vengono accettate
entrambe le forme. Eventi di tipo sconosciuto o con payload non valido
vengono scartati e registrati nei log, mai inoltrati.
"""

import logging
import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Classi di evento che interessano la vista cassa."""
    ORDER_DELIVERED = "order:delivered"
    ORDER_PAID = "order:paid"
    ORDER_STATUS_CHANGE = "order:status-change"
    DEBT_CREATED = "debt:created"
    DEBT_PAID = "debt:paid"
    PAYMENT_CANCELLED = "payment:cancelled"
    PAYMENT_PARTIAL_CANCELLED = "payment:partial-cancelled"
    NOTIFICATION_NEW = "notification:new"


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    @property
    def entity_id(self) -> str:
        """Entità principale dell'evento, usata per la deduplicazione."""
        raise NotImplementedError

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.type, self.entity_id)  # type: ignore[attr-defined]


class _OrderEvent(_Event):
    order_id: uuid.UUID = Field(validation_alias=_alias("order_id", "orderId", "ordinazioneId"))

    @property
    def entity_id(self) -> str:
        return str(self.order_id)


class OrderDelivered(_OrderEvent):
    type: Literal["order:delivered"] = "order:delivered"
    table_key: Optional[str] = Field(None, validation_alias=_alias("table_key", "tableKey", "tavolo"))


class OrderPaid(_OrderEvent):
    type: Literal["order:paid"] = "order:paid"
    amount_cents: Optional[int] = Field(None, validation_alias=_alias("amount_cents", "amountCents"))
    method: Optional[str] = None


class OrderStatusChange(_OrderEvent):
    type: Literal["order:status-change"] = "order:status-change"
    old_status: Optional[str] = Field(None, validation_alias=_alias("old_status", "oldStatus"))
    new_status: str = Field(validation_alias=_alias("new_status", "newStatus", "status"))


class PaymentCancelled(_OrderEvent):
    type: Literal["payment:cancelled"] = "payment:cancelled"
    payment_id: Optional[uuid.UUID] = Field(None, validation_alias=_alias("payment_id", "paymentId"))


class PaymentPartialCancelled(_OrderEvent):
    type: Literal["payment:partial-cancelled"] = "payment:partial-cancelled"
    payment_id: uuid.UUID = Field(validation_alias=_alias("payment_id", "paymentId"))

    @property
    def entity_id(self) -> str:
        # Annullamenti di pagamenti diversi dello stesso ordine sono eventi distinti
        return str(self.payment_id)


class _DebtEvent(_Event):
    debt_id: uuid.UUID = Field(validation_alias=_alias("debt_id", "debtId", "debitoId"))

    @property
    def entity_id(self) -> str:
        return str(self.debt_id)


class DebtCreated(_DebtEvent):
    type: Literal["debt:created"] = "debt:created"
    customer_id: Optional[uuid.UUID] = Field(None, validation_alias=_alias("customer_id", "customerId", "clienteId"))
    order_id: Optional[uuid.UUID] = Field(None, validation_alias=_alias("order_id", "orderId", "ordinazioneId"))


class DebtPaid(_DebtEvent):
    type: Literal["debt:paid"] = "debt:paid"
    amount_cents: Optional[int] = Field(None, validation_alias=_alias("amount_cents", "amountCents"))


class NotificationNew(_Event):
    type: Literal["notification:new"] = "notification:new"
    notification_id: str = Field(validation_alias=_alias("notification_id", "notificationId", "id"))
    kind: str = Field(validation_alias=_alias("kind", "notificationType"))
    message: Optional[str] = None

    @property
    def entity_id(self) -> str:
        return self.notification_id


SyncEvent = Annotated[
    Union[
        OrderDelivered,
        OrderPaid,
        OrderStatusChange,
        PaymentCancelled,
        PaymentPartialCancelled,
        DebtCreated,
        DebtPaid,
        NotificationNew,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[SyncEvent] = TypeAdapter(SyncEvent)

_KNOWN_TYPES = frozenset(e.value for e in EventType)


def parse_event(event_class: str, payload: Optional[Mapping[str, Any]]) -> Optional[SyncEvent]:
    """
    Valida un evento del canale push.

    Args:
        event_class: Classe dell'evento (es. "order:paid")
        payload: Corpo dell'evento

    Returns:
        Evento tipizzato, oppure None se sconosciuto o malformato
    """
    if event_class not in _KNOWN_TYPES:
        logger.debug("Evento sconosciuto scartato: %s", event_class)
        return None
    if not isinstance(payload, Mapping):
        logger.warning("Evento %s scartato: payload non valido (%r)", event_class, payload)
        return None

    data = dict(payload)
    data["type"] = event_class
    try:
        return _event_adapter.validate_python(data)
    except PydanticValidationError as exc:
        logger.warning(
            "Evento %s scartato: payload malformato (%d errori)", event_class, exc.error_count()
        )
        return None
