"""Domain error codes and their user-facing French messages."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in the ``code`` field of problems."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"

    # Auth
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"

    # Groups and membership
    GROUP_NOT_FOUND = "GROUP_NOT_FOUND"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INVALID_NAME = "INVALID_NAME"
    CANNOT_LEAVE_ALONE = "CANNOT_LEAVE_ALONE"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"
    CANNOT_REMOVE_SELF = "CANNOT_REMOVE_SELF"
    CANNOT_REMOVE_LAST_MEMBER = "CANNOT_REMOVE_LAST_MEMBER"

    # Expenses
    EXPENSE_NOT_FOUND = "EXPENSE_NOT_FOUND"
    NOT_CREATOR = "NOT_CREATOR"
    INVALID_PAYER = "INVALID_PAYER"
    NO_PARTICIPANTS = "NO_PARTICIPANTS"
    INVALID_PARTICIPANT = "INVALID_PARTICIPANT"
    CUSTOM_AMOUNTS_EXCEED_TOTAL = "CUSTOM_AMOUNTS_EXCEED_TOTAL"

    # Settlements
    SETTLEMENT_NOT_FOUND = "SETTLEMENT_NOT_FOUND"
    INVALID_RECIPIENT = "INVALID_RECIPIENT"
    SAME_MEMBER = "SAME_MEMBER"

    # Invitations
    ALREADY_MEMBER = "ALREADY_MEMBER"
    ALREADY_INVITED = "ALREADY_INVITED"
    INVITATION_NOT_FOUND = "INVITATION_NOT_FOUND"
    INVITATION_EXPIRED = "INVITATION_EXPIRED"
    EMAIL_SEND_FAILED = "EMAIL_SEND_FAILED"


ERROR_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.UNKNOWN_ERROR: "Une erreur est survenue",
    ErrorCode.NOT_FOUND: "Ressource introuvable",
    ErrorCode.UNAUTHORIZED: "Authentification requise",
    ErrorCode.FORBIDDEN: "Vous n'êtes pas autorisé à effectuer cette action",
    ErrorCode.VALIDATION_ERROR: "Les données envoyées sont invalides",
    ErrorCode.RATE_LIMITED: "Trop de tentatives, réessayez plus tard",
    ErrorCode.PAYLOAD_TOO_LARGE: "La requête est trop volumineuse",
    ErrorCode.INVALID_TOKEN: "Ce lien n'est pas valide",
    ErrorCode.TOKEN_EXPIRED: "Ce lien a expiré",
    ErrorCode.GROUP_NOT_FOUND: "Groupe introuvable",
    ErrorCode.NOT_A_MEMBER: "Vous n'êtes pas membre de ce groupe",
    ErrorCode.NOT_AUTHORIZED: "Vous n'avez pas les droits pour cette action",
    ErrorCode.INVALID_NAME: "Le nom est invalide",
    ErrorCode.CANNOT_LEAVE_ALONE: (
        "Vous ne pouvez pas quitter un groupe dont vous êtes le seul membre"
    ),
    ErrorCode.MEMBER_NOT_FOUND: "Membre introuvable",
    ErrorCode.CANNOT_REMOVE_SELF: 'Utilisez "Quitter le groupe" pour vous retirer',
    ErrorCode.CANNOT_REMOVE_LAST_MEMBER: "Impossible de retirer le dernier membre",
    ErrorCode.EXPENSE_NOT_FOUND: "Dépense introuvable",
    ErrorCode.NOT_CREATOR: "Seul le créateur peut modifier cet élément",
    ErrorCode.INVALID_PAYER: "Le payeur est invalide",
    ErrorCode.NO_PARTICIPANTS: "Au moins un participant est requis",
    ErrorCode.INVALID_PARTICIPANT: "Un participant est invalide",
    ErrorCode.CUSTOM_AMOUNTS_EXCEED_TOTAL: (
        "Les montants personnalisés dépassent le total"
    ),
    ErrorCode.SETTLEMENT_NOT_FOUND: "Remboursement introuvable",
    ErrorCode.INVALID_RECIPIENT: "Destinataire invalide",
    ErrorCode.SAME_MEMBER: "Le payeur et le bénéficiaire doivent être différents",
    ErrorCode.ALREADY_MEMBER: "Cette personne est déjà membre du groupe",
    ErrorCode.ALREADY_INVITED: "Cette personne a déjà été invitée",
    ErrorCode.INVITATION_NOT_FOUND: "Invitation introuvable",
    ErrorCode.INVITATION_EXPIRED: "Cette invitation a expiré",
    ErrorCode.EMAIL_SEND_FAILED: "Impossible d'envoyer l'email",
}

DEFAULT_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.UNKNOWN_ERROR: 500,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.INVALID_TOKEN: 400,
    ErrorCode.TOKEN_EXPIRED: 400,
    ErrorCode.GROUP_NOT_FOUND: 404,
    ErrorCode.NOT_A_MEMBER: 403,
    ErrorCode.NOT_AUTHORIZED: 403,
    ErrorCode.INVALID_NAME: 400,
    ErrorCode.CANNOT_LEAVE_ALONE: 400,
    ErrorCode.MEMBER_NOT_FOUND: 404,
    ErrorCode.CANNOT_REMOVE_SELF: 400,
    ErrorCode.CANNOT_REMOVE_LAST_MEMBER: 400,
    ErrorCode.EXPENSE_NOT_FOUND: 404,
    ErrorCode.NOT_CREATOR: 403,
    ErrorCode.INVALID_PAYER: 400,
    ErrorCode.NO_PARTICIPANTS: 400,
    ErrorCode.INVALID_PARTICIPANT: 400,
    ErrorCode.CUSTOM_AMOUNTS_EXCEED_TOTAL: 400,
    ErrorCode.SETTLEMENT_NOT_FOUND: 404,
    ErrorCode.INVALID_RECIPIENT: 400,
    ErrorCode.SAME_MEMBER: 400,
    ErrorCode.ALREADY_MEMBER: 409,
    ErrorCode.ALREADY_INVITED: 409,
    ErrorCode.INVITATION_NOT_FOUND: 404,
    ErrorCode.INVITATION_EXPIRED: 400,
    ErrorCode.EMAIL_SEND_FAILED: 500,
}


def message_for(code: ErrorCode) -> str:
    """French message for an error code."""
    return ERROR_MESSAGES.get(code, ERROR_MESSAGES[ErrorCode.UNKNOWN_ERROR])


class DomainError(Exception):
    """A business rule violation, converted to a problem response by the API layer."""

    def __init__(
        self,
        code: ErrorCode,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
        **extra_fields: Any,
    ):
        self.code = code
        self.status_code = status_code or DEFAULT_STATUS.get(code, 400)
        self.detail = detail or message_for(code)
        self.extra_fields = extra_fields
        super().__init__(f"{code.value}: {self.detail}")
