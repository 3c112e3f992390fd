from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Literal, Optional


Origen = Literal["import", "manual"]
Ambito = Literal["PERSONAL", "INMUEBLE"]
EstadoConciliacion = Literal["sin_match", "match_automatico", "match_manual"]
EstadoRegistro = Literal["pendiente", "conciliado", "parcial"]
TipoRegistro = Literal["ingreso", "gasto"]
SignoImporte = Literal["positive", "negative"]

AMBITOS: tuple[str, ...] = ("PERSONAL", "INMUEBLE")


class RolColumna(str, Enum):
    """Significado semántico de una columna del extracto."""

    DATE = "date"
    VALUE_DATE = "valueDate"
    DESCRIPTION = "description"
    COUNTERPARTY = "counterparty"
    DEBIT = "debit"
    CREDIT = "credit"
    AMOUNT = "amount"
    BALANCE = "balance"
    REFERENCE = "reference"
    UNKNOWN = "unknown"


MapeoColumnas = dict[int, RolColumna]


@dataclass(frozen=True)
class FormatoNumero:
    decimal: str = ","
    miles: str = "."


@dataclass(frozen=True)
class PerfilBanco:
    clave_banco: str
    version_banco: str
    alias_cabeceras: dict[RolColumna, tuple[str, ...]]
    patrones_ruido: tuple[str, ...] = ()
    formato_numero: FormatoNumero = FormatoNumero()
    formatos_fecha: tuple[str, ...] = ("dd/mm/yyyy",)
    puntuacion_minima: int = 3
    secuencia: int = 0     # orden de alta en el almacén; desempata por más reciente


@dataclass(frozen=True)
class ArchivoParseado:
    nombre_archivo: str
    fila_encabezado: int
    cabeceras: list[str]
    filas_muestra: list[list[str]]
    datos: list[list[str]]

    def filas_datos(self) -> list[list[str]]:
        return self.datos[self.fila_encabezado + 1:]


@dataclass(frozen=True)
class DatosAsistenteMapeo:
    cabeceras: list[str]
    filas_muestra: list[list[str]]
    mapeo_detectado: MapeoColumnas
    sugerencias: list[str]
    ambiguedades: list[str]


@dataclass(frozen=True)
class Movimiento:
    id: str
    cuenta_id: str
    fecha: date
    importe: float                  # con signo, positivo = entrada
    descripcion: str
    moneda: str = "EUR"
    origen: Origen = "import"
    fecha_valor: Optional[date] = None
    contraparte: Optional[str] = None
    referencia: Optional[str] = None
    saldo: Optional[float] = None
    categoria: Optional[str] = None
    ambito: Optional[Ambito] = None
    inmueble_id: Optional[str] = None
    estado_conciliacion: EstadoConciliacion = "sin_match"
    registro_id: Optional[str] = None
    firma_regla: Optional[str] = None
    huella: str = ""


@dataclass(frozen=True)
class RegistroEsperado:
    """Ingreso o gasto previsto, propiedad de un colaborador externo."""

    id: str
    contraparte: str
    fecha_prevista: date
    importe: float                  # magnitud positiva
    tipo: TipoRegistro = "gasto"
    movimiento_id: Optional[str] = None
    estado: EstadoRegistro = "pendiente"


@dataclass(frozen=True)
class ReglaConciliacion:
    firma: str
    categoria: str
    ambito: Ambito
    creada_desde: str
    inmueble_id: Optional[str] = None
    veces_aplicada: int = 0
    signo: SignoImporte = "negative"    # las reglas solo etiquetan movimientos del mismo signo


@dataclass(frozen=True)
class IncidenciaFila:
    fila: int                       # índice en la grilla leída
    motivo: str
    detalle: str = ""
    aceptada: bool = False


@dataclass(frozen=True)
class ResumenImportacion:
    nombre_archivo: str
    filas_leidas: int
    filas_aceptadas: int
    filas_omitidas: int
    motivos: dict[str, int] = field(default_factory=dict)
    incidencias: list[IncidenciaFila] = field(default_factory=list)
    filas_ambiguas: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class Coincidencia:
    registro: RegistroEsperado
    confianza: int                  # 0-100
    motivo: str
    dias: int
