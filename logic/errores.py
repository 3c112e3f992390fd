from __future__ import annotations


class ErrorConciliador(ValueError):
    """Base de los errores de importación y conciliación."""


class EncabezadoNoEncontrado(ErrorConciliador):
    """Ninguna fila de la ventana de búsqueda tiene cabeceras de fecha e importe.

    No es fatal: la importación continúa por el asistente de mapeo.
    """

    def __init__(self, filas_revisadas: int):
        self.filas_revisadas = filas_revisadas
        super().__init__(
            f"No se encontró una fila de cabeceras con fecha e importe en las primeras {filas_revisadas} filas"
        )


class MapeoIncompleto(ErrorConciliador):
    def __init__(self, errores: list[str]):
        self.errores = list(errores)
        super().__init__("Mapeo de columnas incompleto: " + "; ".join(self.errores))


class FechaIlegible(ErrorConciliador):
    def __init__(self, valor: str, formatos: tuple[str, ...] | list[str] = ()):
        self.valor = valor
        self.formatos = tuple(formatos)
        super().__init__(f"Fecha ilegible: {valor!r}")


class ImporteIlegible(ErrorConciliador):
    def __init__(self, valor: str):
        self.valor = valor
        super().__init__(f"Importe ilegible: {valor!r}")


class YaConciliado(ErrorConciliador):
    def __init__(self, movimiento_id: str, registro_id: str, detalle: str):
        self.movimiento_id = movimiento_id
        self.registro_id = registro_id
        super().__init__(f"No se puede conciliar {movimiento_id} con {registro_id}: {detalle}")


class MovimientoNoEncontrado(KeyError):
    pass


class RegistroNoEncontrado(KeyError):
    pass


class SesionCancelada(ErrorConciliador):
    def __init__(self):
        super().__init__("La sesión del asistente de mapeo fue cancelada")
