"""
Internationalization (i18n) module for gemtab.

Every string a tab shows in its Message or Input mode is a template here,
in English (en) and German (de). The tab composes user-visible text from
an error category and, where available, the server-supplied meta.
"""

from typing import Optional


SUPPORTED_LANGUAGES = frozenset({"en", "de"})
DEFAULT_LANGUAGE = "en"


# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Server status classes
    "status.temporary_failure": {
        "en": "Temporary failure: {meta}",
        "de": "Vorübergehender Fehler: {meta}",
    },
    "status.permanent_failure": {
        "en": "Permanent failure: {meta}",
        "de": "Dauerhafter Fehler: {meta}",
    },
    "status.not_found": {
        "en": "Page not found",
        "de": "Seite nicht gefunden",
    },
    "status.certificate_required": {
        "en": "Client certificate required: {meta}",
        "de": "Client-Zertifikat erforderlich: {meta}",
    },

    # Load errors
    "error.too_many_redirects": {
        "en": "Too many redirects. Welcome to the Web from Hell.",
        "de": "Zu viele Weiterleitungen.",
    },
    "error.parse": {
        "en": "Could not load {url}: the server sent an invalid response",
        "de": "{url} konnte nicht geladen werden: ungültige Antwort vom Server",
    },
    "error.dial": {
        "en": "Could not connect to {host}: {reason}",
        "de": "Keine Verbindung zu {host}: {reason}",
    },
    "error.timeout": {
        "en": "Loading {url} timed out",
        "de": "Zeitüberschreitung beim Laden von {url}",
    },
    "error.invalid_url": {
        "en": "Invalid URL: {url}",
        "de": "Ungültige URL: {url}",
    },
    "error.generic": {
        "en": "Could not load {url}",
        "de": "{url} konnte nicht geladen werden",
    },

    # Confirmations
    "confirm.cert_changed": {
        "en": "The SSL certificate for {url!r} has changed since last time.\n"
              "Would you like to see the page anyway?",
        "de": "Das SSL-Zertifikat für {url!r} hat sich seit dem letzten Besuch geändert.\n"
              "Möchten Sie die Seite trotzdem anzeigen?",
    },
    "confirm.open_external": {
        "en": "Open {url!r} externally?",
        "de": "{url!r} extern öffnen?",
    },

    # Prompts
    "prompt.navigate": {
        "en": "Go to URL",
        "de": "Gehe zu URL",
    },
    "prompt.yes_no": {
        "en": "[y]es or [n]o",
        "de": "[y] ja oder [n] nein",
    },
    "prompt.ok": {
        "en": "[OK]",
        "de": "[OK]",
    },

    # Pseudo pages
    "page.home_title": {
        "en": "Home",
        "de": "Startseite",
    },
    "page.help_title": {
        "en": "Keys",
        "de": "Tasten",
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'status.not_found')
        language: Language code ('en' or 'de'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        If the key is not found, returns the key itself.
        If the language is not found, falls back to DEFAULT_LANGUAGE.

    Examples:
        >>> get_message('status.not_found', 'en')
        'Page not found'
        >>> get_message('status.temporary_failure', 'en', meta='slow down')
        'Temporary failure: slow down'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language)
    if message is None:
        message = translations.get(DEFAULT_LANGUAGE)
    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except KeyError:
            pass

    return message


def get_all_message_keys() -> set[str]:
    return set(TRANSLATIONS.keys())


def has_translation(key: str, language: str) -> bool:
    translations = TRANSLATIONS.get(key)
    if translations is None:
        return False
    return language in translations


def get_missing_translations(language: str) -> set[str]:
    """
    Get all message keys that are missing translations for a language.

    Args:
        language: The language code to check

    Returns:
        Set of message keys missing translations for the specified language.
    """
    missing = set()
    for key, translations in TRANSLATIONS.items():
        if language not in translations:
            missing.add(key)
    return missing


def validate_translations() -> dict[str, set[str]]:
    """Map each supported language to the keys it is missing."""
    return {
        language: get_missing_translations(language)
        for language in SUPPORTED_LANGUAGES
    }
