from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from typing import Protocol

from infra.config import get_config
from infra.logger import get_logger
from logic.deteccion import FAMILIAS_ROL, coincide_familia
from logic.errores import FechaIlegible, ImporteIlegible, MapeoIncompleto, SesionCancelada
from logic.lectura import inferir_formato_fecha, inferir_formato_numero, parsear_fecha, parsear_importe
from logic.modelos import (
    ArchivoParseado,
    DatosAsistenteMapeo,
    MapeoColumnas,
    PerfilBanco,
    RolColumna,
)
from logic.perfiles import normalizar_alias, puntuacion_alcanzable, version_del_dia
from logic.texto import limpiar_celda, normalizar_texto


log = get_logger("asistente")

ROLES_IMPORTE_SEPARADO = (RolColumna.DEBIT, RolColumna.CREDIT)


# ==============================
# Validación (función pura)
# ==============================
def validar_mapeo(mapeo: MapeoColumnas) -> list[str]:
    """Errores del mapeo; lista vacía si es aceptable."""
    errores: list[str] = []
    conteo = Counter(RolColumna(r) for r in mapeo.values())

    if conteo[RolColumna.DATE] == 0:
        errores.append("Debe asignar una columna de Fecha")
    elif conteo[RolColumna.DATE] > 1:
        errores.append("Solo puede haber una columna de Fecha")

    for rol, n in conteo.items():
        if rol not in (RolColumna.UNKNOWN, RolColumna.DATE) and n > 1:
            errores.append(f"El rol '{rol.value}' está asignado a {n} columnas")

    tiene_importe = conteo[RolColumna.AMOUNT] > 0
    tiene_cargo_abono = any(conteo[r] > 0 for r in ROLES_IMPORTE_SEPARADO)
    if not tiene_importe and not tiene_cargo_abono:
        errores.append("Debe asignar columnas de importe (Importe con Signo, o Cargo/Abono)")
    if tiene_importe and tiene_cargo_abono:
        errores.append("No puede tener tanto Importe con Signo como Cargo/Abono separados")
    return errores


def exigir_mapeo_valido(mapeo: MapeoColumnas) -> MapeoColumnas:
    errores = validar_mapeo(mapeo)
    if errores:
        raise MapeoIncompleto(errores)
    return {int(c): RolColumna(r) for c, r in mapeo.items()}


# ==============================
# Sugerencias y ambigüedades
# ==============================
def _valores_columna(filas: list[list[str]], col: int) -> list[str]:
    return [v for v in (limpiar_celda(f[col]) if col < len(f) else "" for f in filas) if v]


def _nombre_columna(cabeceras: list[str], col: int) -> str:
    nombre = cabeceras[col] if col < len(cabeceras) else ""
    return f"Columna {col + 1} ({nombre or 'sin nombre'})"


def clasificar_contenido(valores: list[str], formatos_fecha: list[str] | tuple[str, ...]) -> str | None:
    """'fechas', 'importes_con_signo', 'importes' o 'texto' según los valores de muestra."""
    if not valores:
        return None

    def todas(fn) -> bool:
        try:
            for v in valores:
                fn(v)
        except (FechaIlegible, ImporteIlegible):
            return False
        return True

    if todas(lambda v: parsear_fecha(v, formatos_fecha)):
        return "fechas"
    formato = inferir_formato_numero(valores)
    if todas(lambda v: parsear_importe(v, formato)):
        negativos = any((parsear_importe(v, formato) or 0) < 0 for v in valores)
        return "importes_con_signo" if negativos else "importes"
    largo_medio = sum(len(v) for v in valores) / len(valores)
    return "texto" if largo_medio >= 8 else None


_SUGERENCIA_CONTENIDO = {
    "fechas": "parece contener fechas (Fecha o Fecha Valor)",
    "importes_con_signo": "contiene importes con signo (Importe con Signo)",
    "importes": "contiene importes positivos (posible Cargo, Abono o Saldo)",
    "texto": "contiene texto libre (posible Concepto o Contraparte)",
}


def preparar_datos_asistente(
    archivo: ArchivoParseado,
    mapeo_detectado: MapeoColumnas | None = None,
) -> DatosAsistenteMapeo:
    """Arma la vista del asistente: cabeceras, 5 filas, mapeo parcial, sugerencias y avisos."""
    cfg = get_config()
    formatos_fecha = cfg.normalizacion.formatos_fecha
    cabeceras = list(archivo.cabeceras)
    muestra = archivo.filas_muestra[: cfg.deteccion.filas_muestra]
    ancho = max([len(cabeceras)] + [len(f) for f in muestra]) if (cabeceras or muestra) else 0

    mapeo: MapeoColumnas = {c: RolColumna.UNKNOWN for c in range(ancho)}
    for c, r in (mapeo_detectado or {}).items():
        if c < ancho:
            mapeo[c] = RolColumna(r)

    sugerencias: list[str] = []
    ambiguedades: list[str] = []
    por_familia: dict[RolColumna, list[int]] = {}

    for col in range(ancho):
        nombre = _nombre_columna(cabeceras, col)
        valores = _valores_columna(muestra, col)
        tipo = clasificar_contenido(valores, formatos_fecha)

        cab_norm = normalizar_texto(cabeceras[col]) if col < len(cabeceras) else ""
        for rol, claves in FAMILIAS_ROL.items():
            if cab_norm and coincide_familia(cab_norm, claves):
                por_familia.setdefault(rol, []).append(col)

        if mapeo[col] is RolColumna.UNKNOWN and tipo:
            sugerencias.append(f"{nombre}: {_SUGERENCIA_CONTENIDO[tipo]}")
        if not cab_norm and valores:
            ambiguedades.append(f"{nombre}: columna con datos pero sin cabecera")
        if mapeo[col] in (RolColumna.DATE, RolColumna.VALUE_DATE) and valores and tipo != "fechas":
            ambiguedades.append(f"{nombre}: asignada como fecha pero sus valores no parecen fechas")
        if mapeo[col] in (RolColumna.AMOUNT, RolColumna.DEBIT, RolColumna.CREDIT) and valores \
                and tipo not in ("importes", "importes_con_signo"):
            ambiguedades.append(f"{nombre}: asignada como importe pero sus valores no parecen importes")

    for rol, cols in por_familia.items():
        if len(cols) > 1:
            nombres = ", ".join(_nombre_columna(cabeceras, c) for c in cols)
            ambiguedades.append(f"Varias columnas podrían ser '{rol.value}': {nombres}")

    roles = set(mapeo.values())
    if RolColumna.AMOUNT in roles and roles & set(ROLES_IMPORTE_SEPARADO):
        ambiguedades.append("Hay Importe con Signo y Cargo/Abono a la vez; elija uno de los dos esquemas")
    if RolColumna.DATE not in roles:
        ambiguedades.append("No se detectó ninguna columna de Fecha")

    return DatosAsistenteMapeo(
        cabeceras=cabeceras,
        filas_muestra=muestra,
        mapeo_detectado=mapeo,
        sugerencias=sugerencias,
        ambiguedades=ambiguedades,
    )


# ==============================
# Perfil a partir del mapeo aceptado
# ==============================
def construir_perfil(
    cabeceras: list[str],
    mapeo: MapeoColumnas,
    nombre: str,
    filas_muestra: list[list[str]] = (),
) -> PerfilBanco:
    cfg = get_config()
    alias: dict[RolColumna, list[str]] = {}
    for col, rol in sorted(mapeo.items()):
        rol = RolColumna(rol)
        if rol is RolColumna.UNKNOWN or col >= len(cabeceras) or not normalizar_texto(cabeceras[col]):
            continue
        alias.setdefault(rol, []).append(cabeceras[col])

    cols_importe = [c for c, r in mapeo.items() if RolColumna(r) in (RolColumna.AMOUNT, RolColumna.DEBIT, RolColumna.CREDIT)]
    valores_importe = [v for c in cols_importe for v in _valores_columna(list(filas_muestra), c)]

    formatos_fecha = list(cfg.normalizacion.formatos_fecha)
    col_fecha = next((c for c, r in mapeo.items() if RolColumna(r) is RolColumna.DATE), None)
    if col_fecha is not None:
        # el formato que interpreta las fechas de muestra pasa delante
        hint = inferir_formato_fecha(_valores_columna(list(filas_muestra), col_fecha), formatos_fecha)
        if hint is not None:
            formatos_fecha = [hint] + [f for f in formatos_fecha if f != hint]

    perfil = PerfilBanco(
        clave_banco=nombre.strip(),
        version_banco=version_del_dia(),
        alias_cabeceras=normalizar_alias(alias),
        patrones_ruido=tuple(normalizar_texto(p) for p in cfg.normalizacion.patrones_ruido),
        formato_numero=inferir_formato_numero(valores_importe),
        formatos_fecha=tuple(formatos_fecha),
    )
    minimo = min(cfg.perfiles.puntuacion_minima, puntuacion_alcanzable(perfil))
    return replace(perfil, puntuacion_minima=minimo)


class DestinoPerfiles(Protocol):
    def crear_perfil(self, perfil: PerfilBanco) -> tuple[PerfilBanco, bool]:
        ...


@dataclass(frozen=True)
class ResultadoMapeo:
    mapeo: MapeoColumnas
    perfil: PerfilBanco | None
    perfil_creado: bool = False


def aceptar_mapeo(
    datos: DatosAsistenteMapeo,
    mapeo: MapeoColumnas,
    nombre_perfil: str | None = None,
    almacen: DestinoPerfiles | None = None,
) -> ResultadoMapeo:
    """Valida el mapeo elegido por el operador y, si hay nombre, guarda un perfil.

    Lanza MapeoIncompleto con los mensajes concretos; nunca completa por defecto.
    """
    mapeo = exigir_mapeo_valido(mapeo)
    if not nombre_perfil or not nombre_perfil.strip():
        return ResultadoMapeo(mapeo, None, False)
    if almacen is None:
        raise ValueError("Se indicó un nombre de perfil pero no hay almacén de perfiles")

    perfil = construir_perfil(datos.cabeceras, mapeo, nombre_perfil, datos.filas_muestra)
    perfil, creado = almacen.crear_perfil(perfil)
    return ResultadoMapeo(mapeo, perfil, creado)


class SesionAsistenteMapeo:
    """Sesión interactiva sobre unos DatosAsistenteMapeo.

    Nada se persiste hasta `completar`; una sesión cancelada no guarda mapeo
    ni perfil.
    """

    def __init__(self, datos: DatosAsistenteMapeo, almacen: DestinoPerfiles | None = None):
        self.datos = datos
        self.almacen = almacen
        self.mapeo: MapeoColumnas = dict(datos.mapeo_detectado)
        self.cancelada = False
        self.resultado: ResultadoMapeo | None = None

    def asignar_rol(self, columna: int, rol: RolColumna | str) -> None:
        if self.cancelada:
            raise SesionCancelada()
        rol = RolColumna(rol)
        if rol is not RolColumna.UNKNOWN:
            for c, r in self.mapeo.items():
                if r is rol:
                    self.mapeo[c] = RolColumna.UNKNOWN
        self.mapeo[columna] = rol

    @property
    def errores(self) -> list[str]:
        return validar_mapeo(self.mapeo)

    @property
    def es_valido(self) -> bool:
        return not self.errores

    def completar(self, nombre_perfil: str | None = None) -> ResultadoMapeo:
        if self.cancelada:
            raise SesionCancelada()
        self.resultado = aceptar_mapeo(self.datos, self.mapeo, nombre_perfil, self.almacen)
        return self.resultado

    def cancelar(self) -> None:
        log.info("Asistente de mapeo cancelado; no se guarda nada")
        self.cancelada = True
        self.mapeo = dict(self.datos.mapeo_detectado)
