"""
Voxcribe — Language Table

Languages whisper.cpp knows about. Only entries flagged ``supported`` are
accepted by the transcription endpoint; the rest are listed so clients can
render them as unavailable.
"""

LANGUAGES: list[dict] = [
    {"code": "en", "name": "English", "supported": True},
    {"code": "es", "name": "Spanish", "supported": True},
    {"code": "fr", "name": "French", "supported": True},
    {"code": "de", "name": "German", "supported": True},
    {"code": "it", "name": "Italian", "supported": True},
    {"code": "pt", "name": "Portuguese", "supported": True},
    {"code": "nl", "name": "Dutch", "supported": True},
    {"code": "pl", "name": "Polish", "supported": True},
    {"code": "ru", "name": "Russian", "supported": True},
    {"code": "uk", "name": "Ukrainian", "supported": True},
    {"code": "tr", "name": "Turkish", "supported": True},
    {"code": "ar", "name": "Arabic", "supported": True},
    {"code": "hi", "name": "Hindi", "supported": True},
    {"code": "bn", "name": "Bengali", "supported": True},
    {"code": "ta", "name": "Tamil", "supported": True},
    {"code": "te", "name": "Telugu", "supported": True},
    {"code": "ml", "name": "Malayalam", "supported": True},
    {"code": "ur", "name": "Urdu", "supported": True},
    {"code": "zh", "name": "Chinese", "supported": True},
    {"code": "ja", "name": "Japanese", "supported": True},
    {"code": "ko", "name": "Korean", "supported": True},
    {"code": "vi", "name": "Vietnamese", "supported": True},
    {"code": "id", "name": "Indonesian", "supported": True},
    {"code": "sv", "name": "Swedish", "supported": True},
    {"code": "el", "name": "Greek", "supported": True},
    {"code": "he", "name": "Hebrew", "supported": True},
    # Recognised by the engine but too inaccurate with the small model
    {"code": "sw", "name": "Swahili", "supported": False},
    {"code": "yo", "name": "Yoruba", "supported": False},
    {"code": "mi", "name": "Maori", "supported": False},
]

SUPPORTED_LANGUAGE_CODES: frozenset[str] = frozenset(
    lang["code"] for lang in LANGUAGES if lang["supported"]
)


def is_supported(code: str | None) -> bool:
    return bool(code) and code.strip().lower() in SUPPORTED_LANGUAGE_CODES
