from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path

import yaml

from infra.logger import get_logger
from logic.modelos import ReglaConciliacion, SignoImporte
from logic.texto import contiene_palabras


log = get_logger("reglas")

ClaveRegla = tuple[str, SignoImporte]


def regla_desde_dict(d: dict) -> ReglaConciliacion:
    return ReglaConciliacion(
        firma=str(d["signaturePattern"]),
        categoria=str(d["categoria"]),
        ambito=d["ambito"],
        creada_desde=str(d.get("createdFrom", "")),
        inmueble_id=d.get("inmuebleId"),
        veces_aplicada=int(d.get("timesApplied", 0)),
        signo=d.get("amountSign", "negative"),
    )


def regla_a_dict(r: ReglaConciliacion) -> dict:
    return {
        "signaturePattern": r.firma,
        "amountSign": r.signo,
        "categoria": r.categoria,
        "ambito": r.ambito,
        "inmuebleId": r.inmueble_id,
        "timesApplied": r.veces_aplicada,
        "createdFrom": r.creada_desde,
    }


class AlmacenReglas:
    """Reglas de conciliación indexadas por firma y signo del importe.

    Un cargo y una devolución de la misma contraparte son reglas distintas.
    Sin ruta vive solo en memoria; con ruta persiste en YAML tras cada cambio.
    """

    def __init__(self, ruta: str | Path | None = None):
        self._ruta = Path(ruta) if ruta is not None else None
        self._lock = threading.Lock()
        self._reglas: dict[ClaveRegla, ReglaConciliacion] = {}
        if self._ruta is not None and self._ruta.exists():
            with open(self._ruta, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            for d in data.get("rules", []):
                r = regla_desde_dict(d)
                self._reglas[(r.firma, r.signo)] = r
            log.info("Reglas cargadas: %s (%d)", self._ruta, len(self._reglas))

    def _guardar(self) -> None:
        if self._ruta is None:
            return
        self._ruta.parent.mkdir(parents=True, exist_ok=True)
        with open(self._ruta, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                {"rules": [regla_a_dict(r) for r in self._reglas.values()]},
                f,
                allow_unicode=True,
                sort_keys=False,
            )

    def reglas(self) -> list[ReglaConciliacion]:
        with self._lock:
            return list(self._reglas.values())

    def buscar(self, firma: str, signo: SignoImporte = "negative") -> ReglaConciliacion | None:
        with self._lock:
            return self._reglas.get((firma, signo))

    def regla_para(self, texto_norm: str, signo: SignoImporte) -> ReglaConciliacion | None:
        """Regla del mismo signo cuya firma aparece como palabras completas; gana la más larga."""
        if not texto_norm:
            return None
        with self._lock:
            candidatas = [
                r for (f, s), r in self._reglas.items()
                if s == signo and contiene_palabras(texto_norm, f)
            ]
        return max(candidatas, key=lambda r: len(r.firma), default=None)

    def guardar_regla(self, regla: ReglaConciliacion) -> ReglaConciliacion:
        """Alta o actualización por firma y signo; conserva el contador de usos existente."""
        clave = (regla.firma, regla.signo)
        with self._lock:
            previa = self._reglas.get(clave)
            if previa is not None:
                regla = replace(regla, veces_aplicada=max(regla.veces_aplicada, previa.veces_aplicada))
            self._reglas[clave] = regla
            self._guardar()
        return regla

    def incrementar(self, firma: str, signo: SignoImporte, n: int = 1) -> ReglaConciliacion:
        clave = (firma, signo)
        with self._lock:
            regla = replace(self._reglas[clave], veces_aplicada=self._reglas[clave].veces_aplicada + n)
            self._reglas[clave] = regla
            self._guardar()
        return regla
