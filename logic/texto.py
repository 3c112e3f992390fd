from __future__ import annotations

import re
import unicodedata


_MOJIBAKE = (
    ("Ã¡", "á"),
    ("Ã©", "é"),
    ("Ã­", "í"),
    ("Ã³", "ó"),
    ("Ãº", "ú"),
    ("Ã±", "ñ"),
    ("Â", ""),
)


def demojibake(s: str) -> str:
    """Attempt to fix typical UTF-8 text decoded as latin1/cp1252 (mojibake).

    Tries re-encoding to bytes with latin1/cp1252 and decoding back to utf-8.
    Chooses the candidate with fewer mojibake artifacts.
    """
    if not isinstance(s, str):
        return s
    candidates = [s]
    for src in ("latin1", "cp1252"):
        try:
            candidates.append(s.encode(src).decode("utf-8"))
        except UnicodeError:
            continue

    def score(text: str) -> int:
        return sum(text.count(b) for b in ("Ã", "Â", "ï¿½", "�"))

    best = min(candidates, key=score)
    return best.lstrip("\ufeff")


def strip_accents(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", str(text))
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalizar_texto(text: object) -> str:
    """Forma clave para comparaciones tolerantes.

    Minúsculas, sin acentos, sin puntuación y con espacios colapsados. Repara
    también cabeceras rotas por encoding como D?bito/Cr?dito/Descripci?n.
    """
    if text is None:
        return ""
    t = str(text).replace("\ufeff", "").replace("ï»¿", "")
    for bad, good in _MOJIBAKE:
        t = t.replace(bad, good)
    t = strip_accents(demojibake(t)).lower()
    t = re.sub(r"d.?bito", "debito", t)
    t = re.sub(r"cr.?dito", "credito", t)
    t = re.sub(r"descripci.?n", "descripcion", t)
    t = re.sub(r"n.?mero", "numero", t)
    t = t.replace("ï¿½", "").replace("�", "")
    t = re.sub(r"[^0-9a-z\s]", " ", t)
    t = re.sub(r"\s+", " ", t).strip()
    return t


def empieza_palabra(texto_norm: str, clave_norm: str) -> bool:
    """True si `clave_norm` aparece en `texto_norm` comenzando en inicio de palabra."""
    if not clave_norm:
        return False
    return re.search(r"(?<![0-9a-z])" + re.escape(clave_norm), texto_norm) is not None


def contiene_palabras(texto_norm: str, patron_norm: str) -> bool:
    """True si `patron_norm` aparece en `texto_norm` como palabras completas."""
    if not patron_norm:
        return False
    return re.search(r"(?<![0-9a-z])" + re.escape(patron_norm) + r"(?![0-9a-z])", texto_norm) is not None


def limpiar_celda(valor: object) -> str:
    """Texto de una celda sin espacios sobrantes; celdas nulas quedan vacías."""
    if valor is None:
        return ""
    texto = str(valor).strip()
    if texto.lower() in {"nan", "none", "null", "<na>"}:
        return ""
    return re.sub(r"\s+", " ", texto)
