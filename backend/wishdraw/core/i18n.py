DEFAULT_LOCALE = "en"
LOCALES = ("en", "nl")

MESSAGES: dict[str, dict[str, dict[str, str]]] = {
    "en": {
        "secret_santa_drawn": {
            "title": "Secret Santa draw for {group_name}",
            "body": "You're buying a gift for {receiver_name}. Check out their wishlist to find the perfect gift!",
        },
        "secret_santa_email": {
            "subject": "Secret Santa Draw - {group_name}",
            "heading": "The Secret Santa Draw is Complete!",
            "intro": "You're buying a gift for...",
            "outro": "Check out their wishlist to find the perfect gift!",
            "button": "View assignment",
            "footer": "You received this email because you take part in {group_name}.",
        },
        "someone": {"text": "Someone"},
    },
    "nl": {
        "secret_santa_drawn": {
            "title": "Lootjes getrokken voor {group_name}",
            "body": "Jij koopt een cadeau voor {receiver_name}. Bekijk hun verlanglijstje om het perfecte cadeau te vinden!",
        },
        "secret_santa_email": {
            "subject": "Lootjes trekken - {group_name}",
            "heading": "De lootjes zijn getrokken!",
            "intro": "Jij koopt een cadeau voor...",
            "outro": "Bekijk hun verlanglijstje om het perfecte cadeau te vinden!",
            "button": "Bekijk je lootje",
            "footer": "Je ontvangt deze e-mail omdat je meedoet aan {group_name}.",
        },
        "someone": {"text": "Iemand"},
    },
}


def normalize_locale(locale: str | None) -> str:
    if not locale:
        return DEFAULT_LOCALE
    base = locale.replace("_", "-").split("-")[0].lower()
    return base if base in LOCALES else DEFAULT_LOCALE


def translate(locale: str | None, message_type: str, **params: object) -> dict[str, str]:
    """Return the message templates for ``message_type`` with ``{key}`` filled in.

    Unknown placeholders are left as-is.
    """
    templates = MESSAGES[normalize_locale(locale)].get(message_type) or MESSAGES[DEFAULT_LOCALE][message_type]
    return {key: _interpolate(value, params) for key, value in templates.items()}


def _interpolate(template: str, params: dict[str, object]) -> str:
    result = template
    for key, value in params.items():
        result = result.replace("{" + key + "}", str(value))
    return result
