"""Lokalisierte Meldungen (en/de/fr) für API-Antworten."""

from config import FALLBACK_LOCALE

MESSAGES = {
    "en": {
        "task.created": "Task created successfully",
        "task.updated": "Task updated successfully",
        "task.deleted": "Task deleted successfully",
        "task.restored": "Task restored successfully",
        "task.not_found": "Task not found",
        "task.unauthorized": "You are not authorized to access this task",
        "task.parent_not_found": "Parent task not found",
        "task.parent_unauthorized": "You are not authorized to use this parent task",
        "task.invalid_hierarchy": "Invalid task hierarchy",
        "task.self_parent": "A task cannot be its own parent",
        "task.max_depth": "Cannot create subtask of a subtask. Maximum nesting level is 2",
        "task.has_subtasks": "A task with subtasks cannot become a subtask",
        "task.subtasks_reordered": "Subtasks reordered successfully",
        "task.subtask_moved": "Subtask moved successfully",
        "task.bulk_done": "Bulk operation completed on {count} subtasks",
        "task.status.pending": "Pending",
        "task.status.in_progress": "In Progress",
        "task.status.completed": "Completed",
        "task.status.cancelled": "Cancelled",
        "task.priority.low": "Low",
        "task.priority.medium": "Medium",
        "task.priority.high": "High",
        "task.priority.urgent": "Urgent",
        "task.validation.name_required": "Task name is required",
        "task.validation.name_max": "Task name cannot exceed 255 characters",
        "task.validation.description_max": "Task description cannot exceed 1000 characters",
        "task.validation.due_date_future": "Due date must be in the future",
        "task.validation.locale_unsupported": "Unsupported locale",
        "task.validation.status_invalid": "Invalid task status",
        "task.validation.priority_invalid": "Invalid task priority",
        "task.validation.subtask_ids_invalid": "The given ids must be exactly the subtasks of this task",
        "auth.login_success": "Login successful",
        "auth.failed": "Invalid credentials",
        "auth.logout_success": "Logout successful",
        "auth.logout_all_success": "Logged out from all devices",
        "auth.register_success": "Registration successful",
        "auth.token_refresh_success": "Token refreshed successfully",
        "auth.unauthenticated": "Unauthenticated",
        "auth.deactivated": "Account is deactivated",
        "auth.email_taken": "A user with this email already exists",
        "auth.throttle": "Too many attempts. Please try again in {seconds} seconds",
        "auth.account_deleted": "Account deactivated",
        "locale.switched": "Language switched successfully",
        "user.preferences_updated": "Preferences updated successfully",
        "general.success": "Operation completed successfully",
        "general.error": "An error occurred",
        "general.validation_failed": "Validation failed",
        "general.server_error": "Internal server error",
        "general.not_found": "Resource not found",
    },
    "de": {
        "task.created": "Aufgabe erfolgreich erstellt",
        "task.updated": "Aufgabe erfolgreich aktualisiert",
        "task.deleted": "Aufgabe erfolgreich gelöscht",
        "task.restored": "Aufgabe erfolgreich wiederhergestellt",
        "task.not_found": "Aufgabe nicht gefunden",
        "task.unauthorized": "Sie sind nicht berechtigt, auf diese Aufgabe zuzugreifen",
        "task.parent_not_found": "Übergeordnete Aufgabe nicht gefunden",
        "task.parent_unauthorized": "Sie sind nicht berechtigt, diese übergeordnete Aufgabe zu verwenden",
        "task.invalid_hierarchy": "Ungültige Aufgabenhierarchie",
        "task.self_parent": "Eine Aufgabe kann nicht ihre eigene übergeordnete Aufgabe sein",
        "task.max_depth": "Unteraufgaben von Unteraufgaben sind nicht erlaubt. Maximale Tiefe ist 2",
        "task.has_subtasks": "Eine Aufgabe mit Unteraufgaben kann keine Unteraufgabe werden",
        "task.subtasks_reordered": "Unteraufgaben erfolgreich neu sortiert",
        "task.subtask_moved": "Unteraufgabe erfolgreich verschoben",
        "task.bulk_done": "Sammelaktion für {count} Unteraufgaben abgeschlossen",
        "task.status.pending": "Ausstehend",
        "task.status.in_progress": "In Bearbeitung",
        "task.status.completed": "Abgeschlossen",
        "task.status.cancelled": "Abgebrochen",
        "task.priority.low": "Niedrig",
        "task.priority.medium": "Mittel",
        "task.priority.high": "Hoch",
        "task.priority.urgent": "Dringend",
        "task.validation.name_required": "Aufgabenname ist erforderlich",
        "task.validation.name_max": "Aufgabenname darf nicht länger als 255 Zeichen sein",
        "task.validation.description_max": "Aufgabenbeschreibung darf nicht länger als 1000 Zeichen sein",
        "task.validation.due_date_future": "Fälligkeitsdatum muss in der Zukunft liegen",
        "task.validation.locale_unsupported": "Nicht unterstützte Sprache",
        "task.validation.status_invalid": "Ungültiger Aufgabenstatus",
        "task.validation.priority_invalid": "Ungültige Aufgabenpriorität",
        "task.validation.subtask_ids_invalid": "Die IDs müssen genau den Unteraufgaben dieser Aufgabe entsprechen",
        "auth.login_success": "Anmeldung erfolgreich",
        "auth.failed": "Ungültige Anmeldedaten",
        "auth.logout_success": "Abmeldung erfolgreich",
        "auth.logout_all_success": "Von allen Geräten abgemeldet",
        "auth.register_success": "Registrierung erfolgreich",
        "auth.token_refresh_success": "Token erfolgreich aktualisiert",
        "auth.unauthenticated": "Nicht authentifiziert",
        "auth.deactivated": "Konto ist deaktiviert",
        "auth.email_taken": "Ein Benutzer mit dieser E-Mail existiert bereits",
        "auth.throttle": "Zu viele Versuche. Bitte in {seconds} Sekunden erneut versuchen",
        "auth.account_deleted": "Konto deaktiviert",
        "locale.switched": "Sprache erfolgreich gewechselt",
        "user.preferences_updated": "Einstellungen erfolgreich aktualisiert",
        "general.success": "Vorgang erfolgreich abgeschlossen",
        "general.error": "Ein Fehler ist aufgetreten",
        "general.validation_failed": "Validierung fehlgeschlagen",
        "general.server_error": "Interner Serverfehler",
        "general.not_found": "Ressource nicht gefunden",
    },
    "fr": {
        "task.created": "Tâche créée avec succès",
        "task.updated": "Tâche mise à jour avec succès",
        "task.deleted": "Tâche supprimée avec succès",
        "task.restored": "Tâche restaurée avec succès",
        "task.not_found": "Tâche non trouvée",
        "task.unauthorized": "Vous n'êtes pas autorisé à accéder à cette tâche",
        "task.parent_not_found": "Tâche parent non trouvée",
        "task.parent_unauthorized": "Vous n'êtes pas autorisé à utiliser cette tâche parent",
        "task.invalid_hierarchy": "Hiérarchie de tâches invalide",
        "task.self_parent": "Une tâche ne peut pas être son propre parent",
        "task.max_depth": "Impossible de créer une sous-tâche d'une sous-tâche. Le niveau maximal est 2",
        "task.has_subtasks": "Une tâche avec des sous-tâches ne peut pas devenir une sous-tâche",
        "task.subtasks_reordered": "Sous-tâches réordonnées avec succès",
        "task.subtask_moved": "Sous-tâche déplacée avec succès",
        "task.bulk_done": "Opération groupée terminée sur {count} sous-tâches",
        "task.status.pending": "En attente",
        "task.status.in_progress": "En cours",
        "task.status.completed": "Terminée",
        "task.status.cancelled": "Annulée",
        "task.priority.low": "Faible",
        "task.priority.medium": "Moyenne",
        "task.priority.high": "Élevée",
        "task.priority.urgent": "Urgente",
        "task.validation.name_required": "Le nom de la tâche est requis",
        "task.validation.name_max": "Le nom de la tâche ne peut pas dépasser 255 caractères",
        "task.validation.description_max": "La description de la tâche ne peut pas dépasser 1000 caractères",
        "task.validation.due_date_future": "La date d'échéance doit être dans le futur",
        "task.validation.locale_unsupported": "Langue non prise en charge",
        "task.validation.status_invalid": "Statut de tâche invalide",
        "task.validation.priority_invalid": "Priorité de tâche invalide",
        "task.validation.subtask_ids_invalid": "Les identifiants doivent correspondre exactement aux sous-tâches de cette tâche",
        "auth.login_success": "Connexion réussie",
        "auth.failed": "Identifiants invalides",
        "auth.logout_success": "Déconnexion réussie",
        "auth.logout_all_success": "Déconnecté de tous les appareils",
        "auth.register_success": "Inscription réussie",
        "auth.token_refresh_success": "Token actualisé avec succès",
        "auth.unauthenticated": "Non authentifié",
        "auth.deactivated": "Le compte est désactivé",
        "auth.email_taken": "Un utilisateur avec cet email existe déjà",
        "auth.throttle": "Trop de tentatives. Réessayez dans {seconds} secondes",
        "auth.account_deleted": "Compte désactivé",
        "locale.switched": "Langue changée avec succès",
        "user.preferences_updated": "Préférences mises à jour avec succès",
        "general.success": "Opération terminée avec succès",
        "general.error": "Une erreur s'est produite",
        "general.validation_failed": "Échec de la validation",
        "general.server_error": "Erreur interne du serveur",
        "general.not_found": "Ressource non trouvée",
    },
}


def trans(key: str, locale: str = FALLBACK_LOCALE, **params) -> str:
    """Meldung in `locale`, sonst Fallback-Sprache, sonst der Schlüssel selbst."""
    text = MESSAGES.get(locale, {}).get(key)
    if text is None:
        text = MESSAGES[FALLBACK_LOCALE].get(key, key)
    if params:
        try:
            return text.format(**params)
        except (KeyError, IndexError):
            return text
    return text
