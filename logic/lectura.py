from __future__ import annotations

import hashlib
import re
from collections import Counter
from datetime import date, datetime
from typing import Iterable

from infra.config import get_config
from infra.logger import get_logger
from logic.errores import FechaIlegible, ImporteIlegible, MapeoIncompleto
from logic.modelos import (
    ArchivoParseado,
    FormatoNumero,
    IncidenciaFila,
    MapeoColumnas,
    Movimiento,
    PerfilBanco,
    ResumenImportacion,
    RolColumna,
)
from logic.texto import limpiar_celda, normalizar_texto


log = get_logger("lectura")

DEBITO_CREDITO_AMBIGUO = "debito_credito_ambiguo"

ROLES_NUMERICOS = frozenset({RolColumna.AMOUNT, RolColumna.DEBIT, RolColumna.CREDIT, RolColumna.BALANCE})


# ==============================
# Fechas
# ==============================
_TOKENS_FECHA = (("yyyy", "%Y"), ("yy", "%y"), ("dd", "%d"), ("mm", "%m"), ("hh", "%H"), ("mi", "%M"), ("ss", "%S"))


def formato_strptime(hint: str) -> str:
    """Convierte 'dd/mm/yyyy' a '%d/%m/%Y'; los formatos con '%' se usan tal cual."""
    if "%" in hint:
        return hint
    fmt = hint.lower()
    for token, directiva in _TOKENS_FECHA:
        fmt = fmt.replace(token, directiva)
    return fmt


def parsear_fecha(texto: str, formatos: Iterable[str]) -> date:
    """Prueba los formatos en orden; el primero que interpreta el texto completo gana."""
    valor = limpiar_celda(texto)
    # Excel vía pandas deja "2024-03-15 00:00:00"
    valor = re.sub(r"[ T]00:00(:00)?(\.0+)?$", "", valor)
    formatos = tuple(formatos)
    for hint in formatos:
        try:
            return datetime.strptime(valor, formato_strptime(hint)).date()
        except ValueError:
            continue
    raise FechaIlegible(texto, formatos)


# Formatos que no están en config.yaml pero aparecen en extractos exportados
FORMATOS_FECHA_ALTERNATIVOS = ("mm/dd/yyyy", "mm-dd-yyyy", "mm/dd/yy", "ddmmyyyy", "yyyymmdd")


def inferir_formato_fecha(valores: Iterable[str], formatos: Iterable[str] | None = None) -> str | None:
    """Primer formato que interpreta todas las fechas de muestra.

    Se prueban primero los formatos de config.yaml y después los alternativos,
    así que una fecha como 03/04/2024 se sigue leyendo como día/mes. Si ninguno
    sirve para todas, gana el que interpreta más; None sin muestras legibles.
    """
    muestras = [v for v in (limpiar_celda(x) for x in valores) if v]
    if not muestras:
        return None
    candidatos = list(formatos if formatos is not None else get_config().normalizacion.formatos_fecha)
    candidatos += [f for f in FORMATOS_FECHA_ALTERNATIVOS if f not in candidatos]

    mejor, mejor_n = None, 0
    for hint in candidatos:
        n = 0
        for v in muestras:
            try:
                parsear_fecha(v, (hint,))
                n += 1
            except FechaIlegible:
                continue
        if n == len(muestras):
            return hint
        if n > mejor_n:
            mejor, mejor_n = hint, n
    return mejor


# ==============================
# Importes
# ==============================
def parsear_importe(texto: str, formato: FormatoNumero) -> float | None:
    """Convierte un importe con formato local a float con signo.

    Acepta símbolos de moneda, signo delante o detrás, paréntesis como negativo y
    marcas CR/DR. Una celda vacía devuelve None.
    """
    s = limpiar_celda(texto)
    if not s:
        return None
    negativo = False
    if re.search(r"\bDR\b", s, flags=re.IGNORECASE):
        negativo = True
        s = re.sub(r"\bDR\b", "", s, flags=re.IGNORECASE)
    else:
        s = re.sub(r"\bCR\b", "", s, flags=re.IGNORECASE)

    s = re.sub(r"(?i)eur|€|\$|\s", "", s)
    if s.startswith("+"):
        s = s[1:]
    if s.startswith("(") and s.endswith(")"):
        negativo = True
        s = s[1:-1]
    if s.startswith("-"):
        negativo = True
        s = s[1:]
    elif s.endswith("-"):
        negativo = True
        s = s[:-1]
    if not s:
        raise ImporteIlegible(texto)

    miles, decimal = formato.miles, formato.decimal
    if miles and miles in s and decimal not in s and len(s) - s.rfind(miles) - 1 != 3:
        # "1234.56" con miles="." no es un separador de miles: grupos de tres dígitos
        miles, decimal = decimal, miles
    if miles:
        s = s.replace(miles, "")
    if decimal != ".":
        s = s.replace(decimal, ".")
    if not re.fullmatch(r"\d+(\.\d+)?", s):
        raise ImporteIlegible(texto)

    valor = round(float(s), 2)
    return -valor if negativo else valor


def inferir_formato_numero(valores: Iterable[str], por_defecto: FormatoNumero | None = None) -> FormatoNumero:
    """Deduce los separadores a partir de importes de muestra."""
    votos = Counter()
    for v in valores:
        s = re.sub(r"[^0-9.,]", "", limpiar_celda(v))
        punto, coma = s.rfind("."), s.rfind(",")
        if punto >= 0 and coma >= 0:
            votos["," if coma > punto else "."] += 1
        elif coma >= 0:
            votos["," if len(s) - coma - 1 in (1, 2) else "."] += 1
        elif punto >= 0:
            votos["." if len(s) - punto - 1 in (1, 2) else ","] += 1
    if not votos:
        if por_defecto is not None:
            return por_defecto
        cfg = get_config().normalizacion
        return FormatoNumero(decimal=cfg.decimal, miles=cfg.miles)
    decimal = votos.most_common(1)[0][0]
    return FormatoNumero(decimal=decimal, miles="." if decimal == "," else ",")


def calcular_importe_final(
    fila: list[str],
    col_importe: int | None,
    col_debito: int | None,
    col_credito: int | None,
    formato: FormatoNumero,
) -> tuple[float, bool]:
    """Devuelve (importe, ambiguo).

    Con columna única de importe se usa tal cual. Con débito/crédito el importe es
    crédito - débito; si ambas traen valor distinto de cero se neta y se marca la
    fila como ambigua.
    """
    if col_importe is not None:
        valor = parsear_importe(_celda(fila, col_importe), formato)
        if valor is None:
            raise ImporteIlegible("")
        return valor, False
    if col_debito is None and col_credito is None:
        raise MapeoIncompleto(["Debe seleccionar Importe único o columnas de Débito y Crédito."])

    deb = parsear_importe(_celda(fila, col_debito), formato) if col_debito is not None else None
    cred = parsear_importe(_celda(fila, col_credito), formato) if col_credito is not None else None
    if deb is None and cred is None:
        raise ImporteIlegible("")
    deb = abs(deb or 0.0)
    cred = abs(cred or 0.0)
    return round(cred - deb, 2), (deb != 0 and cred != 0)


# ==============================
# Movimientos
# ==============================
def _celda(fila: list[str], idx: int | None) -> str:
    if idx is None or idx >= len(fila):
        return ""
    return limpiar_celda(fila[idx])


def huella_movimiento(
    cuenta_id: str,
    fecha: date,
    importe: float,
    descripcion: str,
    referencia: str | None = None,
) -> str:
    """Hash estable del contenido de un movimiento."""
    base = "|".join([
        str(cuenta_id),
        fecha.isoformat(),
        f"{importe:.2f}",
        normalizar_texto(descripcion),
        normalizar_texto(referencia or ""),
    ])
    return hashlib.sha1(base.encode("utf-8")).hexdigest()[:16]


def _indices_roles(mapeo: MapeoColumnas) -> dict[RolColumna, int]:
    idx: dict[RolColumna, int] = {}
    for col, rol in sorted(mapeo.items()):
        rol = RolColumna(rol)
        if rol is not RolColumna.UNKNOWN and rol not in idx:
            idx[rol] = col
    return idx


def normalizar_filas(
    archivo: ArchivoParseado,
    mapeo: MapeoColumnas,
    perfil: PerfilBanco,
    cuenta_id: str = "",
    moneda: str | None = None,
) -> tuple[list[Movimiento], ResumenImportacion]:
    """Convierte las filas bajo la cabecera en movimientos sin conciliar.

    Las filas que fallan se descartan y se cuentan en el resumen; el resto del
    archivo sigue procesándose.
    """
    idx = _indices_roles(mapeo)
    if RolColumna.DATE not in idx:
        raise MapeoIncompleto(["Debe asignar una columna de Fecha"])
    moneda = moneda or get_config().normalizacion.moneda

    col_fecha = idx[RolColumna.DATE]
    cols_texto = [c for c, r in mapeo.items() if RolColumna(r) not in ROLES_NUMERICOS]
    patrones = [p for p in (normalizar_texto(x) for x in perfil.patrones_ruido) if p]
    formato = perfil.formato_numero

    movimientos: list[Movimiento] = []
    incidencias: list[IncidenciaFila] = []
    motivos: Counter = Counter()
    ambiguas: list[int] = []
    ocurrencias: Counter = Counter()
    leidas = 0

    def omitir(n_fila: int, motivo: str, detalle: str = "") -> None:
        motivos[motivo] += 1
        if motivo != "fila_vacia":
            incidencias.append(IncidenciaFila(n_fila, motivo, detalle))
            log.debug("Fila %d omitida (%s) %s", n_fila, motivo, detalle)

    for offset, fila in enumerate(archivo.filas_datos()):
        n_fila = archivo.fila_encabezado + 1 + offset
        leidas += 1
        if not any(limpiar_celda(c) for c in fila):
            omitir(n_fila, "fila_vacia")
            continue

        texto = normalizar_texto(" ".join(_celda(fila, c) for c in sorted(cols_texto)))
        ruido = next((p for p in patrones if p in texto), None)
        if ruido:
            omitir(n_fila, "ruido", ruido)
            continue

        fecha_txt = _celda(fila, col_fecha)
        if not fecha_txt:
            omitir(n_fila, "sin_fecha")
            continue
        try:
            fecha = parsear_fecha(fecha_txt, perfil.formatos_fecha)
        except FechaIlegible as e:
            omitir(n_fila, "fecha_ilegible", str(e))
            continue

        try:
            importe, ambiguo = calcular_importe_final(
                fila,
                idx.get(RolColumna.AMOUNT),
                idx.get(RolColumna.DEBIT),
                idx.get(RolColumna.CREDIT),
                formato,
            )
        except ImporteIlegible as e:
            omitir(n_fila, "importe_ilegible", str(e))
            continue
        if importe == 0:
            omitir(n_fila, "importe_cero")
            continue

        fecha_valor = None
        if RolColumna.VALUE_DATE in idx and _celda(fila, idx[RolColumna.VALUE_DATE]):
            try:
                fecha_valor = parsear_fecha(_celda(fila, idx[RolColumna.VALUE_DATE]), perfil.formatos_fecha)
            except FechaIlegible:
                log.debug("Fila %d: fecha valor ilegible, se deja vacía", n_fila)

        saldo = None
        if RolColumna.BALANCE in idx:
            try:
                saldo = parsear_importe(_celda(fila, idx[RolColumna.BALANCE]), formato)
            except ImporteIlegible:
                log.debug("Fila %d: saldo ilegible, se deja vacío", n_fila)

        contraparte = _celda(fila, idx.get(RolColumna.COUNTERPARTY)) or None
        referencia = _celda(fila, idx.get(RolColumna.REFERENCE)) or None
        descripcion = _celda(fila, idx.get(RolColumna.DESCRIPTION)) or contraparte or ""

        huella = huella_movimiento(cuenta_id, fecha, importe, descripcion, referencia)
        n = ocurrencias[huella]
        ocurrencias[huella] += 1

        movimientos.append(Movimiento(
            id=f"{huella}-{n}",
            cuenta_id=cuenta_id,
            fecha=fecha,
            importe=importe,
            descripcion=descripcion,
            moneda=moneda,
            origen="import",
            fecha_valor=fecha_valor,
            contraparte=contraparte,
            referencia=referencia,
            saldo=saldo,
            huella=huella,
        ))
        if ambiguo:
            ambiguas.append(n_fila)
            motivos[DEBITO_CREDITO_AMBIGUO] += 1
            incidencias.append(IncidenciaFila(
                n_fila, DEBITO_CREDITO_AMBIGUO,
                "Débito y crédito con valor; se usa el neto", aceptada=True,
            ))

    resumen = ResumenImportacion(
        nombre_archivo=archivo.nombre_archivo,
        filas_leidas=leidas,
        filas_aceptadas=len(movimientos),
        filas_omitidas=leidas - len(movimientos),
        motivos=dict(motivos),
        incidencias=incidencias,
        filas_ambiguas=ambiguas,
    )
    log.info(
        "%s: %d filas leídas, %d aceptadas, %d omitidas",
        archivo.nombre_archivo, resumen.filas_leidas, resumen.filas_aceptadas, resumen.filas_omitidas,
    )
    return movimientos, resumen


def descartar_duplicados(
    movimientos: Iterable[Movimiento],
    ids_existentes: Iterable[str],
) -> tuple[list[Movimiento], list[Movimiento]]:
    """Separa (nuevos, duplicados) frente a movimientos ya importados.

    Los ids son estables entre importaciones del mismo extracto, así que
    reimportar un archivo o uno que se solapa no duplica movimientos.
    """
    vistos = set(ids_existentes)
    nuevos: list[Movimiento] = []
    duplicados: list[Movimiento] = []
    for m in movimientos:
        if m.id in vistos:
            duplicados.append(m)
        else:
            vistos.add(m.id)
            nuevos.append(m)
    return nuevos, duplicados


def validar_saldos(movimientos: list[Movimiento], tolerancia: float = 0.01) -> list[str]:
    """Ids de movimientos cuyo saldo no cuadra con el anterior más su importe.

    Los extractos pueden venir del más antiguo al más reciente o al revés; se
    evalúan ambos sentidos y se devuelve el de menos inconsistencias.
    """
    con_saldo = [m for m in movimientos if m.saldo is not None]

    def inconsistentes(orden: list[Movimiento]) -> list[str]:
        out: list[str] = []
        for prev, cur in zip(orden, orden[1:]):
            if abs(prev.saldo + cur.importe - cur.saldo) > tolerancia:
                out.append(cur.id)
        return out

    directo = inconsistentes(con_saldo)
    inverso = inconsistentes(list(reversed(con_saldo)))
    return directo if len(directo) <= len(inverso) else inverso
