import io
import math
import numbers
from datetime import date, datetime
from pathlib import Path
from typing import BinaryIO, TextIO, Union

import pandas as pd

from infra.config import get_config
from infra.logger import get_logger
from logic.texto import demojibake


log = get_logger("loader")

PathOArchivo = Union[str, Path, TextIO, BinaryIO]

EXTENSIONES_EXCEL = (".xlsx", ".xlsm")
_FIRMA_ZIP = b"PK\x03\x04"


def _leer_bytes(obj: PathOArchivo) -> tuple[bytes, str]:
    """Devuelve (contenido, nombre) para rutas o archivos en memoria.

    Acepta UploadedFile y similares: cualquier objeto con `read`.
    """
    if isinstance(obj, (str, Path)):
        ruta = Path(obj)
        return ruta.read_bytes(), ruta.name

    if not hasattr(obj, "read"):
        raise TypeError("Objeto de archivo no soportado para lectura de extracto")
    if hasattr(obj, "seekable") and obj.seekable():
        obj.seek(0)
    contenido = obj.read()
    if isinstance(contenido, str):
        contenido = contenido.encode("utf-8")
    return contenido, str(getattr(obj, "name", "") or "")


def _decodificar(contenido: bytes, encodings: list[str]) -> tuple[str, str]:
    for enc in encodings:
        try:
            return contenido.decode(enc), enc
        except UnicodeDecodeError:
            continue
    # latin1 decodifica cualquier secuencia de bytes
    return contenido.decode("latin1"), "latin1"


def detectar_separador(texto: str, separadores: list[str], max_lineas: int = 20) -> str:
    """Separador más frecuente en las primeras líneas no vacías; empata el orden de config."""
    lineas = [l for l in texto.splitlines() if l.strip()][:max_lineas]
    conteos = {sep: sum(l.count(sep) for l in lineas) for sep in separadores}
    mejor = max(separadores, key=lambda s: conteos[s])
    return mejor if conteos[mejor] > 0 else separadores[0]


def _valor_a_texto(valor: object) -> str:
    if valor is None or valor is pd.NA:
        return ""
    if isinstance(valor, (pd.Timestamp, datetime)):
        return "" if pd.isna(valor) else valor.strftime("%d/%m/%Y")
    if isinstance(valor, date):
        return valor.strftime("%d/%m/%Y")
    if isinstance(valor, str):
        return demojibake(valor).strip()
    if isinstance(valor, numbers.Integral) and not isinstance(valor, bool):
        return str(int(valor))
    if isinstance(valor, numbers.Real) and not isinstance(valor, bool):
        if math.isnan(float(valor)):
            return ""
        if float(valor).is_integer():
            return str(int(valor))
        return f"{round(float(valor), 2)}"
    return str(valor).strip()


def grilla_desde_dataframe(df: pd.DataFrame) -> list[list[str]]:
    """Convierte un DataFrame leído sin cabecera en la grilla de texto que consume la detección.

    Las columnas vacías del final (separadores sobrantes) se descartan.
    """
    grilla = [[_valor_a_texto(v) for v in fila] for fila in df.itertuples(index=False, name=None)]
    ancho = max((i + 1 for fila in grilla for i, v in enumerate(fila) if v), default=0)
    return [fila[:ancho] for fila in grilla]


def _leer_csv(contenido: bytes) -> pd.DataFrame:
    cfg = get_config().lectura
    texto, enc = _decodificar(contenido, cfg.csv_encodings)
    sep = detectar_separador(texto, cfg.csv_separadores)
    ancho = max((l.count(sep) + 1 for l in texto.splitlines()), default=1)
    log.info("CSV leído con encoding %s y separador %r (%d columnas)", enc, sep, ancho)
    return pd.read_csv(
        io.StringIO(texto),
        sep=sep,
        header=None,
        names=list(range(ancho)),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
        engine="python",
        quotechar='"',
    )


def _leer_excel(contenido: bytes) -> pd.DataFrame:
    return pd.read_excel(io.BytesIO(contenido), header=None, dtype=object, engine="openpyxl")


def cargar_grilla(path_or_file: PathOArchivo, nombre: str | None = None) -> list[list[str]]:
    """Carga un extracto CSV o XLSX como grilla cruda de celdas de texto.

    No interpreta cabeceras ni importes: eso lo hacen la detección y la
    normalización. No persiste archivos.
    """
    contenido, nombre_origen = _leer_bytes(path_or_file)
    nombre = nombre or nombre_origen
    es_excel = Path(nombre).suffix.lower() in EXTENSIONES_EXCEL or contenido.startswith(_FIRMA_ZIP)

    df = _leer_excel(contenido) if es_excel else _leer_csv(contenido)
    grilla = grilla_desde_dataframe(df)
    log.info("%s: %d filas cargadas", nombre or "extracto", len(grilla))
    return grilla
