from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from infra.config import get_config
from infra.logger import get_logger
from logic.errores import EncabezadoNoEncontrado
from logic.modelos import ArchivoParseado, MapeoColumnas, PerfilBanco, RolColumna
from logic.texto import empieza_palabra, limpiar_celda, normalizar_texto


log = get_logger("deteccion")


# ==============================
# Familias de palabras clave
# ==============================
CLAVES_FECHA: tuple[str, ...] = ("fecha", "date", "data", "f operacion", "f valor", "f operativa", "fec")

CLAVES_IMPORTE: tuple[str, ...] = (
    "importe", "import", "amount", "cantidad", "monto", "euros",
    # extractos con columnas separadas de cargo/abono
    "cargo", "abono", "debe", "haber", "debito", "credito", "debit", "credit",
)

FAMILIAS_ROL: dict[RolColumna, tuple[str, ...]] = {
    RolColumna.VALUE_DATE: ("fecha valor", "f valor", "value date", "fecha de valor"),
    RolColumna.DATE: ("fecha", "date", "f operacion", "f operativa", "fec", "booking"),
    RolColumna.BALANCE: ("saldo", "balance", "disponible"),
    RolColumna.DEBIT: ("cargo", "debito", "debe", "debit", "adeudo", "salida", "paid out"),
    RolColumna.CREDIT: ("abono", "credito", "haber", "credit", "entrada", "ingreso", "paid in"),
    RolColumna.AMOUNT: ("importe", "import", "amount", "cantidad", "monto", "euros", "eur"),
    RolColumna.REFERENCE: (
        "referencia", "ref", "reference", "numero operacion", "num operacion",
        "id operacion", "comprobante", "nro",
    ),
    RolColumna.COUNTERPARTY: (
        "contraparte", "beneficiario", "ordenante", "tercero", "counterparty",
        "payee", "payer", "proveedor", "remitente", "destinatario", "comercio",
    ),
    RolColumna.DESCRIPTION: (
        "concepto", "descripcion", "detalle", "observaciones", "movimiento",
        "texto", "glosa", "leyenda", "motivo", "description", "details", "concept",
    ),
}

# Orden de resolución: los roles más específicos primero ("fecha valor" antes que "fecha")
ORDEN_ROLES: tuple[RolColumna, ...] = tuple(FAMILIAS_ROL)


def coincide_familia(cabecera_norm: str, claves: tuple[str, ...]) -> bool:
    return any(empieza_palabra(cabecera_norm, c) for c in claves)


def rol_por_familia(cabecera: str, excluir: set[RolColumna] | frozenset = frozenset()) -> RolColumna:
    """Primer rol (según ORDEN_ROLES) cuya familia coincide con la cabecera."""
    norm = normalizar_texto(cabecera)
    if not norm:
        return RolColumna.UNKNOWN
    for rol in ORDEN_ROLES:
        if rol in excluir:
            continue
        if coincide_familia(norm, FAMILIAS_ROL[rol]):
            return rol
    return RolColumna.UNKNOWN


# ==============================
# Fila de cabeceras
# ==============================
def celdas_no_vacias(fila: list) -> list[str]:
    return [c for c in (limpiar_celda(v) for v in fila) if c]


def detectar_fila_encabezado(grilla: list[list[str]], max_filas: int | None = None) -> int:
    """Índice de la primera fila con una cabecera tipo fecha y otra tipo importe.

    Gana la primera fila que cumple, aunque una posterior tenga más coincidencias.
    """
    if max_filas is None:
        max_filas = get_config().deteccion.filas_busqueda_encabezado
    tope = min(max_filas, len(grilla))

    for i in range(tope):
        candidatas = celdas_no_vacias(grilla[i] or [])
        if len(candidatas) < 2:
            continue
        normalizadas = [normalizar_texto(c) for c in candidatas]
        tiene_fecha = any(coincide_familia(n, CLAVES_FECHA) for n in normalizadas)
        tiene_importe = any(coincide_familia(n, CLAVES_IMPORTE) for n in normalizadas)
        if tiene_fecha and tiene_importe:
            log.debug("Fila de cabeceras detectada en %d: %s", i, candidatas)
            return i

    raise EncabezadoNoEncontrado(tope)


# ==============================
# Mapeo de columnas
# ==============================
def roles_por_perfil(perfil: PerfilBanco, cabeceras: list[str]) -> MapeoColumnas:
    """Asigna roles con los alias del perfil: la primera cabecera que coincide gana el rol."""
    normalizadas = [normalizar_texto(c) for c in cabeceras]
    mapeo: MapeoColumnas = {i: RolColumna.UNKNOWN for i in range(len(cabeceras))}
    for rol, alias in perfil.alias_cabeceras.items():
        for i, norm in enumerate(normalizadas):
            if mapeo[i] is RolColumna.UNKNOWN and norm in alias:
                mapeo[i] = rol
                break
    return mapeo


def roles_por_familias(cabeceras: list[str]) -> MapeoColumnas:
    """Heurística genérica por familias de palabras; una columna por rol."""
    mapeo: MapeoColumnas = {}
    asignados: set[RolColumna] = set()
    for i, cabecera in enumerate(cabeceras):
        rol = rol_por_familia(cabecera, excluir=asignados)
        mapeo[i] = rol
        if rol is not RolColumna.UNKNOWN:
            asignados.add(rol)
    return ajustar_exclusiones(mapeo)


def ajustar_exclusiones(mapeo: MapeoColumnas) -> MapeoColumnas:
    """Corrige combinaciones imposibles que deja la heurística.

    - Sin columna de fecha pero con fecha valor: la fecha valor pasa a ser la fecha.
    - Importe junto con débito/crédito: gana el par si está completo, si no el importe.
    """
    mapeo = dict(mapeo)
    roles = set(mapeo.values())

    if RolColumna.DATE not in roles and RolColumna.VALUE_DATE in roles:
        for i, rol in mapeo.items():
            if rol is RolColumna.VALUE_DATE:
                mapeo[i] = RolColumna.DATE
        roles = set(mapeo.values())

    tiene_par = RolColumna.DEBIT in roles and RolColumna.CREDIT in roles
    if RolColumna.AMOUNT in roles and (RolColumna.DEBIT in roles or RolColumna.CREDIT in roles):
        descartar = {RolColumna.AMOUNT} if tiene_par else {RolColumna.DEBIT, RolColumna.CREDIT}
        for i, rol in mapeo.items():
            if rol in descartar:
                mapeo[i] = RolColumna.UNKNOWN
    return mapeo


class FuentePerfiles(Protocol):
    def buscar_perfiles_candidatos(self, cabeceras: list[str]) -> list[tuple[PerfilBanco, int]]:
        ...


@dataclass(frozen=True)
class ResolucionMapeo:
    mapeo: MapeoColumnas
    perfil: PerfilBanco | None
    puntuacion: int
    origen: str                     # "perfil" o "heuristica"


def resolver_mapeo(cabeceras: list[str], almacen: FuentePerfiles | None) -> ResolucionMapeo:
    candidatos = almacen.buscar_perfiles_candidatos(cabeceras) if almacen is not None else []
    if candidatos:
        perfil, puntos = candidatos[0]
        if puntos >= perfil.puntuacion_minima:
            log.info("Perfil %s reconocido (puntuación %d)", perfil.clave_banco, puntos)
            return ResolucionMapeo(roles_por_perfil(perfil, cabeceras), perfil, puntos, "perfil")
        log.info(
            "Perfil %s por debajo del umbral (%d < %d); se usa la heurística",
            perfil.clave_banco, puntos, perfil.puntuacion_minima,
        )
    return ResolucionMapeo(roles_por_familias(cabeceras), None, 0, "heuristica")


@dataclass(frozen=True)
class ResultadoDeteccion:
    archivo: ArchivoParseado
    resolucion: ResolucionMapeo


def construir_archivo(
    grilla: list[list[str]],
    nombre_archivo: str,
    fila_encabezado: int,
    filas_muestra: int | None = None,
) -> ArchivoParseado:
    if filas_muestra is None:
        filas_muestra = get_config().deteccion.filas_muestra
    datos = [[limpiar_celda(c) for c in (fila or [])] for fila in grilla]
    cabeceras = datos[fila_encabezado] if datos else []
    # Se recortan las columnas vacías del final de la fila de cabeceras
    while cabeceras and not cabeceras[-1]:
        cabeceras = cabeceras[:-1]
    muestra = [f for f in datos[fila_encabezado + 1:] if any(f)][:filas_muestra]
    return ArchivoParseado(
        nombre_archivo=nombre_archivo,
        fila_encabezado=fila_encabezado,
        cabeceras=list(cabeceras),
        filas_muestra=muestra,
        datos=datos,
    )


def fila_por_perfiles(
    grilla: list[list[str]],
    almacen: FuentePerfiles | None,
    max_filas: int | None = None,
) -> int | None:
    """Primera fila cuyas celdas reconoce algún perfil guardado por encima de su umbral.

    Cubre extractos con cabeceras sin palabras de fecha/importe que el operador
    ya mapeó una vez con el asistente.
    """
    if almacen is None:
        return None
    if max_filas is None:
        max_filas = get_config().deteccion.filas_busqueda_encabezado
    for i, fila in enumerate(grilla[:max_filas]):
        celdas = celdas_no_vacias(fila or [])
        if len(celdas) < 2:
            continue
        candidatos = almacen.buscar_perfiles_candidatos(celdas)
        if candidatos and candidatos[0][1] >= candidatos[0][0].puntuacion_minima:
            return i
    return None


def detectar(
    grilla: list[list[str]],
    nombre_archivo: str,
    almacen: FuentePerfiles | None,
    max_filas: int | None = None,
) -> ResultadoDeteccion:
    """Localiza la cabecera y resuelve el mapeo; propaga EncabezadoNoEncontrado."""
    try:
        fila = detectar_fila_encabezado(grilla, max_filas)
    except EncabezadoNoEncontrado:
        fila = fila_por_perfiles(grilla, almacen, max_filas)
        if fila is None:
            raise
        log.info("%s: cabecera reconocida por perfil en la fila %d", nombre_archivo, fila)
    archivo = construir_archivo(grilla, nombre_archivo, fila)
    resolucion = resolver_mapeo(archivo.cabeceras, almacen)
    return ResultadoDeteccion(archivo, resolucion)
