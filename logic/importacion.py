from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from infra.config import get_config
from infra.logger import get_logger
from logic.asistente_mapeo import DestinoPerfiles, aceptar_mapeo, preparar_datos_asistente, validar_mapeo
from logic.deteccion import (
    celdas_no_vacias,
    FuentePerfiles,
    construir_archivo,
    detectar,
    roles_por_familias,
)
from logic.errores import EncabezadoNoEncontrado
from logic.lectura import inferir_formato_fecha, inferir_formato_numero, normalizar_filas, validar_saldos
from logic.modelos import (
    ArchivoParseado,
    DatosAsistenteMapeo,
    MapeoColumnas,
    Movimiento,
    PerfilBanco,
    ResumenImportacion,
    RolColumna,
)
from logic.perfiles import perfil_por_defecto
from logic.reglas import FuenteReglas, aplicar_reglas
from logic.texto import limpiar_celda


log = get_logger("importacion")

EstadoImportacion = Literal["completado", "requiere_mapeo"]

# filas que no cuentan como datos al decidir si el archivo se pudo leer
MOTIVOS_SIN_DATOS = ("fila_vacia", "ruido", "importe_cero")


@dataclass(frozen=True)
class ResultadoImportacion:
    estado: EstadoImportacion
    archivo: ArchivoParseado
    mapeo: MapeoColumnas = field(default_factory=dict)
    perfil: PerfilBanco | None = None
    movimientos: list[Movimiento] = field(default_factory=list)
    resumen: ResumenImportacion | None = None
    datos_asistente: DatosAsistenteMapeo | None = None
    saldos_inconsistentes: list[str] = field(default_factory=list)


def _fila_encabezado_probable(grilla: list[list[str]]) -> int:
    """Primera fila con al menos dos celdas; punto de partida para el asistente."""
    tope = get_config().deteccion.filas_busqueda_encabezado
    for i, fila in enumerate(grilla[:tope]):
        if len(celdas_no_vacias(fila)) >= 2:
            return i
    return 0


def _valores_columnas(archivo: ArchivoParseado, mapeo: MapeoColumnas, roles: tuple[RolColumna, ...]) -> list[str]:
    cols = [c for c, r in mapeo.items() if RolColumna(r) in roles]
    return [limpiar_celda(f[c]) for f in archivo.filas_datos() for c in cols if c < len(f)]


def _con_prioridad(primero: str | None, resto: list[str]) -> list[str]:
    if primero is None:
        return list(resto)
    return [primero] + [f for f in resto if f != primero]


def _perfil_generico(archivo: ArchivoParseado, mapeo: MapeoColumnas) -> PerfilBanco:
    importes = _valores_columnas(archivo, mapeo, (RolColumna.AMOUNT, RolColumna.DEBIT, RolColumna.CREDIT))
    fechas = _valores_columnas(archivo, mapeo, (RolColumna.DATE,))
    formato_fecha = inferir_formato_fecha(fechas)
    if formato_fecha is not None:
        log.info("%s: formato de fecha detectado %s", archivo.nombre_archivo, formato_fecha)
    return perfil_por_defecto(
        formato_numero=inferir_formato_numero(importes),
        formatos_fecha=_con_prioridad(formato_fecha, get_config().normalizacion.formatos_fecha),
    )


def _requiere_mapeo(
    archivo: ArchivoParseado,
    mapeo: MapeoColumnas,
    resumen: ResumenImportacion | None = None,
) -> ResultadoImportacion:
    return ResultadoImportacion(
        estado="requiere_mapeo",
        archivo=archivo,
        mapeo=mapeo,
        resumen=resumen,
        datos_asistente=preparar_datos_asistente(archivo, mapeo),
    )


def _filas_con_datos(resumen: ResumenImportacion) -> int:
    return resumen.filas_leidas - sum(resumen.motivos.get(m, 0) for m in MOTIVOS_SIN_DATOS)


def _normalizar(
    archivo: ArchivoParseado,
    mapeo: MapeoColumnas,
    perfil: PerfilBanco,
    cuenta_id: str,
    almacen_reglas: FuenteReglas | None = None,
) -> ResultadoImportacion:
    movimientos, resumen = normalizar_filas(archivo, mapeo, perfil, cuenta_id)
    if not movimientos and _filas_con_datos(resumen) > 0:
        # ninguna fila se pudo leer: el mapeo o los formatos no encajan con el archivo
        log.warning(
            "%s: 0 de %d filas aceptadas (%s); se deriva al asistente de mapeo",
            archivo.nombre_archivo, _filas_con_datos(resumen), resumen.motivos,
        )
        return _requiere_mapeo(archivo, mapeo, resumen)
    if almacen_reglas is not None:
        movimientos = aplicar_reglas(movimientos, almacen_reglas)
    inconsistentes = validar_saldos(movimientos)
    if inconsistentes:
        log.warning("%s: %d saldos no cuadran", archivo.nombre_archivo, len(inconsistentes))
    return ResultadoImportacion(
        estado="completado",
        archivo=archivo,
        mapeo=mapeo,
        perfil=perfil,
        movimientos=movimientos,
        resumen=resumen,
        saldos_inconsistentes=inconsistentes,
    )


def importar_grilla(
    grilla: list[list[str]],
    nombre_archivo: str,
    cuenta_id: str,
    almacen_perfiles: FuentePerfiles | None = None,
    almacen_reglas: FuenteReglas | None = None,
) -> ResultadoImportacion:
    """Importa una grilla cruda de extracto.

    Si no se localiza la cabecera o el mapeo automático queda incompleto, la
    importación no falla: devuelve `requiere_mapeo` con los datos del asistente.
    """
    try:
        det = detectar(grilla, nombre_archivo, almacen_perfiles)
    except EncabezadoNoEncontrado as e:
        log.warning("%s: %s; se deriva al asistente de mapeo", nombre_archivo, e)
        archivo = construir_archivo(grilla, nombre_archivo, _fila_encabezado_probable(grilla))
        return _requiere_mapeo(archivo, roles_por_familias(archivo.cabeceras))

    archivo, resolucion = det.archivo, det.resolucion
    errores = validar_mapeo(resolucion.mapeo)
    if errores:
        log.warning("%s: mapeo automático incompleto (%s)", nombre_archivo, "; ".join(errores))
        return _requiere_mapeo(archivo, resolucion.mapeo)

    perfil = resolucion.perfil or _perfil_generico(archivo, resolucion.mapeo)
    return _normalizar(archivo, resolucion.mapeo, perfil, cuenta_id, almacen_reglas)


def completar_importacion(
    archivo: ArchivoParseado,
    mapeo: MapeoColumnas,
    cuenta_id: str,
    nombre_perfil: str | None = None,
    almacen_perfiles: DestinoPerfiles | None = None,
    almacen_reglas: FuenteReglas | None = None,
) -> ResultadoImportacion:
    """Segunda mitad de la importación tras el asistente.

    Valida el mapeo (lanza MapeoIncompleto), guarda el perfil si hay nombre y
    normaliza el archivo.
    """
    datos = preparar_datos_asistente(archivo, mapeo)
    aceptado = aceptar_mapeo(datos, mapeo, nombre_perfil, almacen_perfiles)
    perfil = aceptado.perfil or _perfil_generico(archivo, aceptado.mapeo)
    return _normalizar(archivo, aceptado.mapeo, perfil, cuenta_id, almacen_reglas)
