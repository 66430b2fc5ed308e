# simgateway/core/ssml.py

from typing import Optional

SSML_NAMESPACE = "http://www.w3.org/2001/10/synthesis"
MSTTS_NAMESPACE = "https://www.w3.org/2001/mstts"

_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&apos;",
}


def escape_ssml(text: str) -> str:
    """Escapes the five reserved markup characters in one pass."""
    return "".join(_ESCAPES.get(ch, ch) for ch in text)


def locale_from_voice(voice: str) -> str:
    # Azure voice names look like 'fr-FR-DeniseNeural'
    return voice[:5]


def build_ssml(
    text: str,
    voice: str,
    style: Optional[str] = None,
    style_degree: Optional[float] = None,
    rate: Optional[str] = None,
    pitch: Optional[str] = None,
    volume: Optional[str] = None,
    leading_silence_ms: Optional[int] = None,
    trailing_silence_ms: Optional[int] = None,
    locale: Optional[str] = None,
) -> str:
    """
    Builds an Azure Speech SSML document.

    The express-as and prosody wrappers are only emitted when one of their
    parameters is set. The locale falls back to the voice name prefix when
    not given explicitly.
    """
    lang = escape_ssml(locale or locale_from_voice(voice))
    body = escape_ssml(text)

    prosody_attrs = [
        f'{name}="{escape_ssml(value)}"'
        for name, value in (("rate", rate), ("pitch", pitch), ("volume", volume))
        if value
    ]
    if prosody_attrs:
        body = f"<prosody {' '.join(prosody_attrs)}>{body}</prosody>"

    if style or style_degree is not None:
        style_attrs = []
        if style:
            style_attrs.append(f'style="{escape_ssml(style)}"')
        if style_degree is not None:
            style_attrs.append(f'styledegree="{style_degree:g}"')
        body = f"<mstts:express-as {' '.join(style_attrs)}>{body}</mstts:express-as>"

    silences = []
    if leading_silence_ms is not None:
        silences.append(f'<mstts:silence type="Leading-exact" value="{int(leading_silence_ms)}ms"/>')
    if trailing_silence_ms is not None:
        silences.append(f'<mstts:silence type="Tailing-exact" value="{int(trailing_silence_ms)}ms"/>')

    return (
        f'<speak version="1.0" xmlns="{SSML_NAMESPACE}" xmlns:mstts="{MSTTS_NAMESPACE}" xml:lang="{lang}">'
        f'<voice name="{escape_ssml(voice)}">'
        f"{''.join(silences)}{body}"
        "</voice></speak>"
    )
