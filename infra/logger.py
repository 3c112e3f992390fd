import logging
from typing import Optional


RAIZ = "conciliador"

_raiz: Optional[logging.Logger] = None


def _configurar_raiz() -> logging.Logger:
    global _raiz
    if _raiz is not None:
        return _raiz

    logger = logging.getLogger(RAIZ)
    logger.setLevel(logging.INFO)

    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    _raiz = logger
    return logger


def get_logger(name: str = RAIZ) -> logging.Logger:
    """Devuelve el logger de la aplicación o uno hijo (`conciliador.<name>`)."""
    raiz = _configurar_raiz()
    if name == RAIZ:
        return raiz
    return raiz.getChild(name)
