from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterable, Iterator

from infra.logger import get_logger
from logic.errores import MovimientoNoEncontrado, RegistroNoEncontrado, YaConciliado
from logic.modelos import Movimiento, RegistroEsperado


log = get_logger("libro")

# Se considera cobrado/pagado del todo con el 99 % del importe previsto
UMBRAL_COMPLETO = 0.99


class LibroConciliacion:
    """Movimientos y registros esperados de una cuenta/periodo.

    Todas las modificaciones pasan por un único RLock, de modo que `conciliar`
    es un compare-and-set sobre el par y el barrido del motor de reglas no se
    cruza con una conciliación concurrente.
    """

    def __init__(
        self,
        movimientos: Iterable[Movimiento] = (),
        registros: Iterable[RegistroEsperado] = (),
    ):
        self._lock = threading.RLock()
        self._movimientos: dict[str, Movimiento] = {}
        self._registros: dict[str, RegistroEsperado] = {}
        self.agregar_movimientos(movimientos)
        self.agregar_registros(registros)

    @contextmanager
    def transaccion(self) -> Iterator["LibroConciliacion"]:
        with self._lock:
            yield self

    # ==============================
    # Altas y consultas
    # ==============================
    def agregar_movimientos(self, movimientos: Iterable[Movimiento]) -> int:
        """Agrega movimientos nuevos; los ids ya presentes se ignoran."""
        n = 0
        with self._lock:
            for m in movimientos:
                if m.id not in self._movimientos:
                    self._movimientos[m.id] = m
                    n += 1
        return n

    def agregar_registros(self, registros: Iterable[RegistroEsperado]) -> None:
        with self._lock:
            for r in registros:
                self._registros[r.id] = r

    def movimiento(self, movimiento_id: str) -> Movimiento:
        try:
            return self._movimientos[movimiento_id]
        except KeyError:
            raise MovimientoNoEncontrado(movimiento_id) from None

    def registro(self, registro_id: str) -> RegistroEsperado:
        try:
            return self._registros[registro_id]
        except KeyError:
            raise RegistroNoEncontrado(registro_id) from None

    def movimientos(self) -> list[Movimiento]:
        with self._lock:
            return list(self._movimientos.values())

    def registros(self) -> list[RegistroEsperado]:
        with self._lock:
            return list(self._registros.values())

    def movimientos_sin_conciliar(self) -> list[Movimiento]:
        with self._lock:
            return [
                m for m in self._movimientos.values()
                if m.estado_conciliacion == "sin_match" and m.registro_id is None
            ]

    def registros_pendientes(self) -> list[RegistroEsperado]:
        with self._lock:
            return [r for r in self._registros.values() if r.movimiento_id is None]

    def actualizar_movimiento(self, movimiento: Movimiento) -> None:
        with self._lock:
            if movimiento.id not in self._movimientos:
                raise MovimientoNoEncontrado(movimiento.id)
            self._movimientos[movimiento.id] = movimiento

    # ==============================
    # Conciliación 1:1
    # ==============================
    def conciliar(self, movimiento_id: str, registro_id: str) -> tuple[Movimiento, RegistroEsperado]:
        """Enlaza un movimiento con un registro esperado.

        Falla con YaConciliado si cualquiera de los dos ya está enlazado; en ese
        caso no se modifica nada.
        """
        with self._lock:
            mov = self.movimiento(movimiento_id)
            reg = self.registro(registro_id)
            if mov.registro_id is not None:
                raise YaConciliado(movimiento_id, registro_id, f"el movimiento ya está enlazado a {mov.registro_id}")
            if reg.movimiento_id is not None:
                raise YaConciliado(movimiento_id, registro_id, f"el registro ya está enlazado a {reg.movimiento_id}")

            completo = abs(mov.importe) >= reg.importe * UMBRAL_COMPLETO
            nuevo_mov = replace(mov, registro_id=reg.id, estado_conciliacion="match_manual")
            nuevo_reg = replace(reg, movimiento_id=mov.id, estado="conciliado" if completo else "parcial")
            self._movimientos[mov.id] = nuevo_mov
            self._registros[reg.id] = nuevo_reg

        log.info("Conciliado %s <-> %s (%s)", mov.id, reg.id, nuevo_reg.estado)
        return nuevo_mov, nuevo_reg

    def desconciliar(self, movimiento_id: str) -> tuple[Movimiento, RegistroEsperado | None]:
        """Deshace el enlace de un movimiento; la categorización se conserva."""
        with self._lock:
            mov = self.movimiento(movimiento_id)
            reg = self._registros.get(mov.registro_id) if mov.registro_id else None
            nuevo_mov = replace(mov, registro_id=None, estado_conciliacion="sin_match")
            self._movimientos[mov.id] = nuevo_mov
            nuevo_reg = None
            if reg is not None:
                nuevo_reg = replace(reg, movimiento_id=None, estado="pendiente")
                self._registros[reg.id] = nuevo_reg
        return nuevo_mov, nuevo_reg
