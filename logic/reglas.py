from __future__ import annotations

import re
from collections import Counter
from contextlib import AbstractContextManager
from dataclasses import dataclass, replace
from typing import Iterable, Protocol

from infra.config import get_config
from infra.logger import get_logger
from logic.modelos import AMBITOS, Movimiento, ReglaConciliacion, SignoImporte
from logic.texto import contiene_palabras, normalizar_texto


log = get_logger("reglas")

SUFIJOS_SOCIETARIOS = {"sa", "sl", "slu", "sau", "sll", "sc", "scp", "cb", "sccl", "slne", "ltd", "inc", "gmbh", "srl"}

_RE_FECHA = re.compile(r"\b\d{1,4}[/.-]\d{1,2}[/.-]\d{1,4}\b")
_RE_IMPORTE = re.compile(r"[-+]?\d[\d.,]*[.,]\d{2}\b")


def texto_movimiento(m: Movimiento) -> str:
    return normalizar_texto(f"{m.contraparte or ''} {m.descripcion or ''}")


def signo_importe(m: Movimiento) -> SignoImporte:
    return "positive" if m.importe >= 0 else "negative"


class FuenteReglas(Protocol):
    def reglas(self) -> list[ReglaConciliacion]:
        ...

    def regla_para(self, texto_norm: str, signo: SignoImporte) -> ReglaConciliacion | None:
        ...

    def guardar_regla(self, regla: ReglaConciliacion) -> ReglaConciliacion:
        ...

    def incrementar(self, firma: str, signo: SignoImporte, n: int = 1) -> ReglaConciliacion:
        ...


class LibroMovimientos(Protocol):
    def transaccion(self) -> AbstractContextManager:
        ...

    def movimiento(self, movimiento_id: str) -> Movimiento:
        ...

    def movimientos(self) -> list[Movimiento]:
        ...

    def actualizar_movimiento(self, movimiento: Movimiento) -> None:
        ...


def _limpiar_firma(texto_norm: str) -> str:
    palabras = [p for p in texto_norm.split() if not any(ch.isdigit() for ch in p)]
    # "S.A.U." llega normalizado como "s a u"
    i = len(palabras)
    while i > 0 and len(palabras[i - 1]) == 1:
        i -= 1
    if i < len(palabras) and "".join(palabras[i:]) in SUFIJOS_SOCIETARIOS:
        palabras = palabras[:i]
    return " ".join(p for p in palabras if p not in SUFIJOS_SOCIETARIOS)


def derivar_firma(movimiento: Movimiento, longitud_maxima: int | None = None) -> str:
    """Firma estable del movimiento para reconocer a la misma contraparte.

    Usa la contraparte normalizada; si no hay, la descripción sin fechas,
    importes, números ni códigos. Sin sufijos societarios. Puede quedar vacía.
    """
    tope = longitud_maxima or get_config().reglas.longitud_maxima_firma

    firma = _limpiar_firma(normalizar_texto(movimiento.contraparte))
    if not firma:
        desc = _RE_FECHA.sub(" ", movimiento.descripcion or "")
        desc = _RE_IMPORTE.sub(" ", desc)
        firma = _limpiar_firma(normalizar_texto(desc))

    if len(firma) > tope:
        corte = firma[:tope]
        # no partir la última palabra si hay otra antes
        firma = corte.rsplit(" ", 1)[0] if firma[tope] != " " and " " in corte else corte
    return firma.strip()


@dataclass(frozen=True)
class ResultadoConciliacionManual:
    movimiento: Movimiento
    regla: ReglaConciliacion | None
    aplicados: int


def conciliacion_manual(
    libro: LibroMovimientos,
    almacen: FuenteReglas,
    movimiento_id: str,
    categoria: str,
    ambito: str,
    inmueble_id: str | None = None,
) -> ResultadoConciliacionManual:
    """Categoriza un movimiento a mano y aprende una regla para los parecidos.

    La regla se aplica en el acto a los demás movimientos sin conciliar del
    mismo signo cuyo texto contiene la firma: una devolución no hereda la
    categoría de un cargo. Todo el barrido ocurre dentro de la transacción del
    libro.
    """
    if ambito not in AMBITOS:
        raise ValueError(f"Ámbito no válido: {ambito!r} (esperado {', '.join(AMBITOS)})")
    if not categoria or not categoria.strip():
        raise ValueError("La categoría es obligatoria")

    with libro.transaccion():
        mov = libro.movimiento(movimiento_id)
        firma = derivar_firma(mov)
        signo = signo_importe(mov)
        etiquetado = replace(
            mov,
            categoria=categoria,
            ambito=ambito,
            inmueble_id=inmueble_id,
            estado_conciliacion="match_manual",
            firma_regla=firma or None,
        )
        libro.actualizar_movimiento(etiquetado)

        if not firma:
            log.info("Movimiento %s categorizado sin regla: firma vacía", mov.id)
            return ResultadoConciliacionManual(etiquetado, None, 0)

        regla = almacen.guardar_regla(ReglaConciliacion(
            firma=firma,
            categoria=categoria,
            ambito=ambito,
            creada_desde=mov.id,
            inmueble_id=inmueble_id,
            signo=signo,
        ))

        aplicados = 0
        for otro in libro.movimientos():
            if otro.id == mov.id or otro.estado_conciliacion != "sin_match" or otro.registro_id is not None:
                continue
            if signo_importe(otro) == signo and contiene_palabras(texto_movimiento(otro), firma):
                libro.actualizar_movimiento(_aplicar(otro, regla))
                aplicados += 1

        if aplicados:
            regla = almacen.incrementar(firma, signo, aplicados)

    log.info("Regla '%s' -> %s/%s aplicada a %d movimientos", firma, categoria, ambito, aplicados)
    return ResultadoConciliacionManual(etiquetado, regla, aplicados)


def _aplicar(m: Movimiento, regla: ReglaConciliacion) -> Movimiento:
    return replace(
        m,
        categoria=regla.categoria,
        ambito=regla.ambito,
        inmueble_id=regla.inmueble_id,
        estado_conciliacion="match_automatico",
        firma_regla=regla.firma,
    )


def aplicar_reglas(movimientos: Iterable[Movimiento], almacen: FuenteReglas) -> list[Movimiento]:
    """Etiqueta movimientos recién importados con las reglas existentes."""
    usos: Counter[tuple[str, SignoImporte]] = Counter()
    out: list[Movimiento] = []
    for m in movimientos:
        regla = None
        if m.estado_conciliacion == "sin_match" and m.registro_id is None and m.categoria is None:
            regla = almacen.regla_para(texto_movimiento(m), signo_importe(m))
        if regla is None:
            out.append(m)
            continue
        out.append(_aplicar(m, regla))
        usos[(regla.firma, regla.signo)] += 1

    for (firma, signo), n in usos.items():
        almacen.incrementar(firma, signo, n)
    if usos:
        log.info("Reglas aplicadas a %d movimientos importados", sum(usos.values()))
    return out


def estadisticas_reglas(almacen: FuenteReglas, top: int = 5) -> dict:
    reglas = almacen.reglas()
    return {
        "total": len(reglas),
        "por_ambito": dict(Counter(r.ambito for r in reglas)),
        "aplicaciones": sum(r.veces_aplicada for r in reglas),
        "mas_usadas": [
            (r.firma, r.veces_aplicada)
            for r in sorted(reglas, key=lambda r: (-r.veces_aplicada, r.firma))[:top]
        ],
    }
