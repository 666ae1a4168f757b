from __future__ import annotations


class RoundMateError(Exception):
    """Base des erreurs métier."""


class FormatError(RoundMateError, ValueError):
    """Fichier illisible ou colonnes obligatoires manquantes : rejet complet."""


class RowValidationError(RoundMateError, ValueError):
    """Ligne invalide ; convertie en ``RowIssue`` par le parseur, jamais propagée."""

    def __init__(self, message: str, column: str | None = None) -> None:
        super().__init__(message)
        self.column = column


class NotFoundError(RoundMateError, LookupError):
    """Participant inconnu dans le roster."""


class EmptyRosterError(RoundMateError):
    """Assignation demandée sans aucun participant."""


class SessionStateError(RoundMateError, RuntimeError):
    """Opération interdite dans l'état courant de la session."""
