from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from infra.config import get_config
from infra.logger import get_logger
from logic.errores import YaConciliado
from logic.modelos import Coincidencia, Movimiento, RegistroEsperado
from logic.texto import normalizar_texto


log = get_logger("conciliacion")


def _cfg():
    return get_config().conciliacion


@dataclass(frozen=True)
class Parametros:
    tolerancia_importe: float = field(default_factory=lambda: _cfg().tolerancia_importe)
    ventana_dias: int = field(default_factory=lambda: _cfg().ventana_dias)
    peso_importe: int = field(default_factory=lambda: _cfg().peso_importe)
    peso_fecha: int = field(default_factory=lambda: _cfg().peso_fecha)
    peso_texto: int = field(default_factory=lambda: _cfg().peso_texto)
    confianza_minima: int = field(default_factory=lambda: _cfg().confianza_minima)
    confianza_autoconciliacion: int = field(default_factory=lambda: _cfg().confianza_autoconciliacion)


# ==============================
# Sub-puntuaciones
# ==============================
def puntos_importe(importe_mov: float, importe_reg: float, params: Parametros) -> float:
    """Importe exacto -> peso completo; decae linealmente hasta la tolerancia; luego 0."""
    diff = abs(abs(importe_mov) - abs(importe_reg))
    if diff < 0.005:
        return float(params.peso_importe)
    if params.tolerancia_importe <= 0 or diff > params.tolerancia_importe:
        return 0.0
    return params.peso_importe * (1 - diff / params.tolerancia_importe)


def puntos_fecha(dias: int, params: Parametros) -> float:
    """Mismo día -> peso completo; decae dentro de la ventana; fuera de ella 0."""
    dias = abs(dias)
    if dias == 0:
        return float(params.peso_fecha)
    if dias > params.ventana_dias:
        return 0.0
    return params.peso_fecha * (1 - dias / (params.ventana_dias + 1))


def tiene_match_textual(movimiento: Movimiento, contraparte: str) -> bool:
    """Contención simple del nombre de la contraparte en el texto del movimiento, o al revés."""
    nombre = normalizar_texto(contraparte)
    if not nombre:
        return False
    for texto in (movimiento.contraparte, movimiento.descripcion):
        t = normalizar_texto(texto)
        if t and (nombre in t or (len(t) >= 4 and t in nombre)):
            return True
    return False


def puntuar(movimiento: Movimiento, registro: RegistroEsperado, params: Parametros) -> Coincidencia:
    dias = (movimiento.fecha - registro.fecha_prevista).days
    p_imp = puntos_importe(movimiento.importe, registro.importe, params)
    p_fec = puntos_fecha(dias, params)
    texto = tiene_match_textual(movimiento, registro.contraparte)

    motivos: list[str] = []
    if p_imp == params.peso_importe:
        motivos.append("Importe exacto")
    elif p_imp > 0:
        motivos.append(f"Importe aproximado (dif. {abs(abs(movimiento.importe) - registro.importe):.2f})")
    if dias == 0:
        motivos.append("Misma fecha")
    elif p_fec > 0:
        motivos.append(f"Fecha a {abs(dias)} días")
    if texto:
        motivos.append(f"Coincidencia de texto con '{registro.contraparte}'")

    total = p_imp + p_fec + (params.peso_texto if texto else 0)
    confianza = max(0, min(100, round(total)))
    return Coincidencia(
        registro=registro,
        confianza=confianza,
        motivo=", ".join(motivos) if motivos else "Sin coincidencias",
        dias=abs(dias),
    )


def signo_compatible(movimiento: Movimiento, registro: RegistroEsperado) -> bool:
    """Un ingreso previsto solo casa con abonos y un gasto con cargos."""
    if registro.tipo == "ingreso":
        return movimiento.importe > 0
    return movimiento.importe < 0


def buscar_coincidencias(
    movimiento: Movimiento,
    candidatos: Iterable[RegistroEsperado],
    params: Parametros | None = None,
) -> list[Coincidencia]:
    """Candidatos por encima de la confianza mínima, de mayor a menor.

    A igual confianza gana la fecha más cercana. Los registros de signo
    contrario al movimiento no se consideran. No modifica nada.
    """
    params = params or Parametros()
    out: list[Coincidencia] = []
    for reg in candidatos:
        if reg.movimiento_id is not None or not signo_compatible(movimiento, reg):
            continue
        c = puntuar(movimiento, reg, params)
        if c.confianza > params.confianza_minima:
            out.append(c)
    out.sort(key=lambda c: (-c.confianza, c.dias, c.registro.id))
    return out


# ==============================
# Integración con el libro de conciliación
# ==============================
class LibroPendientes(Protocol):
    def movimientos_sin_conciliar(self) -> list[Movimiento]:
        ...

    def registros_pendientes(self) -> list[RegistroEsperado]:
        ...

    def conciliar(self, movimiento_id: str, registro_id: str) -> tuple[Movimiento, RegistroEsperado]:
        ...


def sugerencias(libro: LibroPendientes, params: Parametros | None = None) -> dict[str, list[Coincidencia]]:
    """Sugerencias para cada movimiento sin conciliar que tenga al menos una."""
    params = params or Parametros()
    pendientes = libro.registros_pendientes()
    out: dict[str, list[Coincidencia]] = {}
    for mov in libro.movimientos_sin_conciliar():
        encontrados = buscar_coincidencias(mov, pendientes, params)
        if encontrados:
            out[mov.id] = encontrados
    return out


def autoconciliar(libro: LibroPendientes, params: Parametros | None = None) -> tuple[int, int]:
    """Concilia las mejores coincidencias por encima del umbral automático.

    Solo se enlaza cuando el mejor candidato es único (sin empate de confianza).
    Devuelve (conciliados, omitidos).
    """
    params = params or Parametros()
    conciliados = omitidos = 0
    for mov_id, encontrados in sugerencias(libro, params).items():
        mejor = encontrados[0]
        empate = len(encontrados) > 1 and encontrados[1].confianza == mejor.confianza
        if mejor.confianza < params.confianza_autoconciliacion or empate:
            omitidos += 1
            continue
        try:
            libro.conciliar(mov_id, mejor.registro.id)
            conciliados += 1
        except YaConciliado as e:
            log.warning("Autoconciliación omitida: %s", e)
            omitidos += 1
    log.info("Autoconciliación: %d conciliados, %d omitidos", conciliados, omitidos)
    return conciliados, omitidos
