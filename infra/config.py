from __future__ import annotations
import yaml
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


RAIZ_PROYECTO = Path(__file__).resolve().parent.parent
CONFIG_PATH = RAIZ_PROYECTO / "config.yaml"


@dataclass(frozen=True)
class LecturaConfig:
    csv_encodings: list[str]
    csv_separadores: list[str]


@dataclass(frozen=True)
class DeteccionConfig:
    filas_busqueda_encabezado: int
    filas_muestra: int


@dataclass(frozen=True)
class NormalizacionConfig:
    moneda: str
    decimal: str
    miles: str
    formatos_fecha: list[str]
    patrones_ruido: list[str]


@dataclass(frozen=True)
class ConciliacionConfig:
    tolerancia_importe: float
    ventana_dias: int
    peso_importe: int
    peso_fecha: int
    peso_texto: int
    confianza_minima: int
    confianza_autoconciliacion: int


@dataclass(frozen=True)
class PerfilesConfig:
    puntuacion_minima: int


@dataclass(frozen=True)
class ReglasConfig:
    longitud_maxima_firma: int


@dataclass(frozen=True)
class Config:
    lectura: LecturaConfig
    deteccion: DeteccionConfig
    normalizacion: NormalizacionConfig
    conciliacion: ConciliacionConfig
    perfiles: PerfilesConfig
    reglas: ReglasConfig


def resolver_ruta(ruta: str | Path | None) -> Path | None:
    """Rutas relativas del config.yaml se interpretan desde la raíz del proyecto."""
    if ruta is None:
        return None
    ruta = Path(ruta)
    return ruta if ruta.is_absolute() else RAIZ_PROYECTO / ruta


def load_config(path: str | Path | None = None) -> Config:
    with open(path or CONFIG_PATH, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return Config(
        lectura=LecturaConfig(**data["lectura"]),
        deteccion=DeteccionConfig(**data["deteccion"]),
        normalizacion=NormalizacionConfig(**data["normalizacion"]),
        conciliacion=ConciliacionConfig(**data["conciliacion"]),
        perfiles=PerfilesConfig(**data["perfiles"]),
        reglas=ReglasConfig(**data["reglas"]),
    )


@lru_cache(maxsize=1)
def get_config() -> Config:
    return load_config()
