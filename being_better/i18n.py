"""Status and notification strings (pl, en)."""

from __future__ import annotations

DEFAULT_LOCALE = "en"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "auth.signIn": "Sign in with Google",
        "status.waitingForLogin": "Waiting for sign in.",
        "status.missingClientId": "Set GOOGLE_CLIENT_ID in the environment (for example, .env).",
        "status.clickSignIn": "Click '{signIn}'.",
        "status.googleClientInitFailed": "Failed to initialize the Google API client.",
        "status.localApiUnavailable": "Local API is unavailable. Start the being-better server.",
        "status.embeddedStoreUnavailable": "The local store is unavailable. Check that Redis is running.",
        "status.connected": "Connected. You can save data now.",
        "status.sessionRestored": "Session restored from previous sign in.",
        "status.authRejected": "Google authorization was rejected or interrupted.",
        "status.oauthNotReady": "OAuth client is not ready.",
        "status.openingGoogleLogin": "Opening Google sign in...",
        "status.signInFirst": "Sign in first.",
        "status.invalidRating": "Enter an integer between 1 and 10.",
        "status.ratingSaved": "Rating saved.",
        "status.ratingSaveFailed": "Failed to save rating.",
        "status.wordsRequired": "Add at least one word.",
        "status.checkInSaved": "Check-in saved.",
        "status.checkInSaveFailed": "Failed to save check-in.",
        "status.chartLoadFailed": "Failed to load data for the chart.",
        "status.chartUpdated": "Chart updated.",
        "status.cloudLoadFailed": "Failed to load words for the cloud.",
        "status.reminderSent": "Sent a reminder to log today's day.",
        "status.reminderDue": "It's time to log how your day went.",
        "status.reminderPermissionNeeded": "Reminder is due, but notifications are blocked.",
        "status.reminderPermissionGranted": "Reminder notifications are enabled.",
        "status.reminderPermissionDenied": "Reminder notifications are blocked.",
        "status.reminderNotificationsUnsupported": "System notifications are not supported here.",
        "status.pushSetupFailed": "Failed to configure push notifications.",
        "status.pushSyncFailed": "Failed to sync reminder settings to the server.",
        "reminder.notificationTitle": "being better",
        "reminder.notificationBody": "How did your day go? Add your rating.",
    },
    "pl": {
        "auth.signIn": "Zaloguj przez Google",
        "status.waitingForLogin": "Oczekiwanie na logowanie.",
        "status.missingClientId": "Ustaw GOOGLE_CLIENT_ID w środowisku (np. .env).",
        "status.clickSignIn": "Kliknij '{signIn}'.",
        "status.googleClientInitFailed": "Nie udało się uruchomić klienta Google API.",
        "status.localApiUnavailable": "Lokalne API jest niedostępne. Uruchom serwer being-better.",
        "status.embeddedStoreUnavailable": "Lokalny magazyn jest niedostępny. Sprawdź, czy Redis działa.",
        "status.connected": "Połączono. Możesz zapisywać dane.",
        "status.sessionRestored": "Przywrócono sesję z poprzedniego logowania.",
        "status.authRejected": "Autoryzacja Google została odrzucona lub przerwana.",
        "status.oauthNotReady": "Klient OAuth nie jest gotowy.",
        "status.openingGoogleLogin": "Otwieranie logowania Google...",
        "status.signInFirst": "Najpierw się zaloguj.",
        "status.invalidRating": "Podaj liczbę całkowitą od 1 do 10.",
        "status.ratingSaved": "Ocena zapisana.",
        "status.ratingSaveFailed": "Nie udało się zapisać oceny.",
        "status.wordsRequired": "Dodaj co najmniej jedno słowo.",
        "status.checkInSaved": "Wpis zapisany.",
        "status.checkInSaveFailed": "Nie udało się zapisać wpisu.",
        "status.chartLoadFailed": "Nie udało się odczytać danych do wykresu.",
        "status.chartUpdated": "Wykres zaktualizowany.",
        "status.cloudLoadFailed": "Nie udało się odczytać słów do chmury.",
        "status.reminderSent": "Wysłano przypomnienie o podsumowaniu dnia.",
        "status.reminderDue": "Czas na podsumowanie dnia.",
        "status.reminderPermissionNeeded": "Przypomnienie jest gotowe, ale powiadomienia są zablokowane.",
        "status.reminderPermissionGranted": "Powiadomienia o przypomnieniach są włączone.",
        "status.reminderPermissionDenied": "Powiadomienia o przypomnieniach są zablokowane.",
        "status.reminderNotificationsUnsupported": "Powiadomienia systemowe nie są tu obsługiwane.",
        "status.pushSetupFailed": "Nie udało się skonfigurować powiadomień push.",
        "status.pushSyncFailed": "Nie udało się zapisać ustawień przypomnienia na serwerze.",
        "reminder.notificationTitle": "being better",
        "reminder.notificationBody": "Jak minął Twój dzień? Dodaj ocenę.",
    },
}


def translate(key: str, locale: str = DEFAULT_LOCALE, **variables: str) -> str:
    """Look up ``key`` for ``locale``; unknown keys come back unchanged."""
    table = MESSAGES.get(locale, MESSAGES[DEFAULT_LOCALE])
    template = table.get(key) or MESSAGES[DEFAULT_LOCALE].get(key, key)
    for name, value in variables.items():
        template = template.replace("{" + name + "}", value)
    return template
