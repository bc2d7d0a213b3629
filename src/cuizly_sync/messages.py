"""
messages.py

Localized user-facing strings. French is the product default.
"""
from __future__ import annotations

from typing import Dict

DEFAULT_LANGUAGE = "fr"

MESSAGES: Dict[str, Dict[str, str]] = {
    "fr": {
        "error.title": "Erreur",
        "favorites.added": "Ajouté aux favoris",
        "favorites.removed": "Retiré des favoris",
        "favorites.error": "Impossible de modifier les favoris",
        "notifications.allMarkedRead": "Toutes les notifications sont lues",
        "notifications.markAllReadError": "Impossible de marquer les notifications comme lues",
        "notifications.deleted": "Notification supprimée",
        "notifications.deleteError": "Impossible de supprimer la notification",
        "profile.updated": "Profil mis à jour",
        "profile.updatedDesc": "Vos informations ont été sauvegardées",
        "profile.error": "Impossible de sauvegarder le profil",
        "ratings.added": "Note ajoutée",
        "ratings.thanks": "Merci pour votre évaluation",
        "ratings.addError": "Impossible d'ajouter la note",
        "ratings.loadError": "Impossible de charger les notes",
        "ratings.anonymousUser": "Utilisateur anonyme",
        "ratings.anonymous": "anonyme",
        "reservations.created": "Réservation créée avec succès",
        "reservations.updated": "Réservation mise à jour",
        "reservations.cancelled": "Réservation annulée",
        "reservations.error": "Erreur lors de la réservation",
        "comments.added": "Commentaire ajouté",
        "comments.addedDesc": "Votre commentaire a été publié avec succès",
        "comments.addError": "Impossible d'ajouter le commentaire",
        "comments.loadError": "Impossible de charger les commentaires",
        "comments.anonymous": "Consommateur",
        "sync.loadError": "Impossible de charger les données",
        "vendor.rateLimited": "Limite de débit dépassée. Veuillez réessayer plus tard.",
        "vendor.paymentRequired": "Paiement requis. Veuillez ajouter des crédits.",
        "vendor.error": "Le service est momentanément indisponible",
    },
    "en": {
        "error.title": "Error",
        "favorites.added": "Added to favorites",
        "favorites.removed": "Removed from favorites",
        "favorites.error": "Unable to update favorites",
        "notifications.allMarkedRead": "All notifications marked as read",
        "notifications.markAllReadError": "Unable to mark notifications as read",
        "notifications.deleted": "Notification deleted",
        "notifications.deleteError": "Unable to delete the notification",
        "profile.updated": "Profile updated",
        "profile.updatedDesc": "Your information has been saved",
        "profile.error": "Unable to save the profile",
        "ratings.added": "Rating added",
        "ratings.thanks": "Thank you for your rating",
        "ratings.addError": "Unable to add the rating",
        "ratings.loadError": "Unable to load ratings",
        "ratings.anonymousUser": "Anonymous user",
        "ratings.anonymous": "anonymous",
        "reservations.created": "Reservation created",
        "reservations.updated": "Reservation updated",
        "reservations.cancelled": "Reservation cancelled",
        "reservations.error": "Reservation error",
        "comments.added": "Comment added",
        "comments.addedDesc": "Your comment has been published",
        "comments.addError": "Unable to add the comment",
        "comments.loadError": "Unable to load comments",
        "comments.anonymous": "Consumer",
        "sync.loadError": "Unable to load data",
        "vendor.rateLimited": "Rate limit exceeded. Please try again later.",
        "vendor.paymentRequired": "Payment required. Please add credits.",
        "vendor.error": "The service is temporarily unavailable",
    },
}


def t(key: str, language: str = DEFAULT_LANGUAGE) -> str:
    """Translate `key`, falling back to French, then to the key itself."""
    catalog = MESSAGES.get(language) or MESSAGES[DEFAULT_LANGUAGE]
    return catalog.get(key) or MESSAGES[DEFAULT_LANGUAGE].get(key, key)
