"""
Eccezioni Custom per l'applicazione.
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Definisce eccezioni specifiche del dominio per una gestione
centralizzata degli errori.

NOTA: BusinessValidationError è volutamente distinta da pydantic.ValidationError.
- pydantic.ValidationError: errori di formato/tipo nei dati di input (gestiti da FastAPI → 422)
- BusinessValidationError: violazioni delle regole di business logic (gestiti dal nostro handler → 422)
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "BusinessValidationError",
    "ValidationError",       # alias di BusinessValidationError
    "ConflictError",
    "OverAllocationError",
    "AlreadyPaidError",
    "AlreadySettledError",
    "StaleStateError",
    "TransportError",
    "PersistenceError",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Tutte le eccezioni custom ereditano da questa classe base.

    Attributes:
        status_code: HTTP status code da restituire al client
        error_code: Identificativo univoco dell'errore per il frontend
        detail: Messaggio di errore leggibile per l'utente
        extra: Dizionario con dati aggiuntivi per il frontend
    """

    # Default values - overridden in subclasses
    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    default_detail: str = "Errore interno"

    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato (default: quello di classe)
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        self.detail = detail if detail is not None else self.default_detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        """Corpo JSON della risposta di errore."""
        body: Dict[str, Any] = {"detail": self.detail, "error_code": self.error_code}
        if self.extra:
            body["extra"] = self.extra
        return body


class NotFoundError(AppException):
    """
    Eccezione sollevata quando una risorsa non viene trovata.

    Utilizzata quando un'entità cercata non esiste nel database.
    """

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"
    default_detail: str = "Risorsa non trovata"


class BusinessValidationError(ValueError, AppException):
    """
    Eccezione sollevata per violazioni delle regole di business logic.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    Esempi di utilizzo:
        - "L'importo deve essere positivo"
        - "Importo superiore al saldo rimanente"
        - "L'ordine non è ancora stato consegnato"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"
    default_detail: str = "Validazione dati fallita"

    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


# Alias per compatibilità
ValidationError = BusinessValidationError


class ConflictError(AppException):
    """
    Eccezione sollevata per conflitti di stato.

    Base per gli errori dovuti allo stato corrente di ordini, debiti e righe.
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"
    default_detail: str = "Conflitto di stato"


class OverAllocationError(ConflictError):
    """
    Una selezione di pagamento supera la quantità ancora da pagare di una riga.

    Tipicamente due cassieri hanno pagato la stessa riga in parallelo:
    il chiamante deve ricaricare l'ordine e ripetere.
    """

    error_code: str = "OVER_ALLOCATION"
    default_detail: str = "Quantità selezionata superiore al residuo della riga"


class AlreadyPaidError(ConflictError):
    """L'ordine non ha residuo da pagare."""

    error_code: str = "ALREADY_PAID"
    default_detail: str = "Ordine già pagato"


class AlreadySettledError(ConflictError):
    """Il debito è già saldato e non accetta ulteriori pagamenti."""

    error_code: str = "ALREADY_SETTLED"
    default_detail: str = "Debito già saldato"


class StaleStateError(ConflictError):
    """La vista locale non corrisponde più allo stato persistito."""

    error_code: str = "STALE_STATE"
    default_detail: str = "Stato locale non aggiornato, ricaricare"


class TransportError(AppException):
    """Il canale eventi o il caricamento dello snapshot non è disponibile."""

    status_code: int = 503
    error_code: str = "TRANSPORT_ERROR"
    default_detail: str = "Canale di sincronizzazione non disponibile"


class PersistenceError(AppException):
    """Scrittura sul database fallita; la transazione è stata annullata."""

    status_code: int = 500
    error_code: str = "PERSISTENCE_ERROR"
    default_detail: str = "Errore durante il salvataggio dei dati"
