"""
User-facing text, keyed by cause.

The engine itself only emits reason codes (see ``models.results``); hosts turn
them into text with :func:`describe` and show hints with :func:`hint`.
"""

from typing import Dict

from .challenges import Challenge
from .results import CHALLENGE_FAILED, NO_FACE_DETECTED

MESSAGES: Dict[str, Dict[str, str]] = {
    "pt-BR": {
        NO_FACE_DETECTED: "Rosto não detectado. Centralize seu rosto e tente novamente.",
        CHALLENGE_FAILED: "Falha no desafio: {challenge}",
        "passed": "Prova de vida concluída.",
        "hint.prepare": "Posicione seu rosto dentro do quadro",
        "hint.blink": "Pisque algumas vezes",
        "hint.turn-left": "Vire levemente a cabeça para a esquerda",
        "hint.turn-right": "Vire levemente a cabeça para a direita",
        "hint.smile": "Sorria para a câmera",
    },
    "en": {
        NO_FACE_DETECTED: "Face not detected. Center your face and try again.",
        CHALLENGE_FAILED: "Challenge failed: {challenge}",
        "passed": "Proof of life completed.",
        "hint.prepare": "Place your face inside the frame",
        "hint.blink": "Blink a few times",
        "hint.turn-left": "Turn your head slightly to the left",
        "hint.turn-right": "Turn your head slightly to the right",
        "hint.smile": "Smile at the camera",
    },
}

DEFAULT_LOCALE = "pt-BR"


def _catalog(locale: str) -> Dict[str, str]:
    if locale in MESSAGES:
        return MESSAGES[locale]
    # "pt" -> "pt-BR", "en-US" -> "en"
    language = locale.split("-")[0].lower() if locale else ""
    for key, catalog in MESSAGES.items():
        if key.split("-")[0].lower() == language:
            return catalog
    return MESSAGES[DEFAULT_LOCALE]


def describe(reason: str, locale: str = DEFAULT_LOCALE) -> str:
    """
    Turn a result reason code into localized text.

    Args:
        reason: ``None`` for a passed run, ``no_face_detected`` or ``challenge_failed:<name>``
        locale: catalog key; unknown locales fall back to the language, then to the default

    Returns:
        The message. Unknown codes are returned unchanged.
    """
    catalog = _catalog(locale)
    if reason is None:
        return catalog["passed"]
    code, _, challenge = reason.partition(":")
    if code not in catalog:
        return reason
    return catalog[code].format(challenge=challenge)


def hint(challenge: Challenge, locale: str = DEFAULT_LOCALE) -> str:
    return _catalog(locale)[f"hint.{Challenge(challenge).value}"]
