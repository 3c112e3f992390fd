from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import Iterable

import yaml

from infra.logger import get_logger
from logic.modelos import PerfilBanco
from logic.perfiles import (
    buscar_perfiles_candidatos,
    firma_alias,
    perfil_a_dict,
    perfil_desde_dict,
    version_del_dia,
)


log = get_logger("perfiles")


class AlmacenPerfiles:
    """Catálogo de perfiles de banco.

    Las lecturas trabajan sobre una tupla inmutable, así que pueden hacerse desde
    varios hilos sin bloqueo. Las altas se serializan con un lock: dos
    importaciones que proponen la misma disposición de columnas a la vez dejan
    un único perfil.
    """

    def __init__(self, ruta: str | Path | None = None, perfiles: Iterable[PerfilBanco] = ()):
        self._ruta = Path(ruta) if ruta is not None else None
        self._lock = threading.Lock()
        self._perfiles: tuple[PerfilBanco, ...] = tuple(perfiles)
        if self._ruta is not None and self._ruta.exists():
            self._perfiles = self._perfiles + tuple(self._leer(self._ruta, inicio=len(self._perfiles)))
        self._siguiente = max((p.secuencia for p in self._perfiles), default=0) + 1

    @staticmethod
    def _leer(ruta: Path, inicio: int = 0) -> list[PerfilBanco]:
        with open(ruta, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        crudos = data.get("profiles", []) if isinstance(data, dict) else data
        perfiles = [perfil_desde_dict(d, secuencia=inicio + i + 1) for i, d in enumerate(crudos)]
        log.info("Catálogo de perfiles cargado: %s (%d perfiles)", ruta, len(perfiles))
        return perfiles

    def _guardar(self) -> None:
        if self._ruta is None:
            return
        self._ruta.parent.mkdir(parents=True, exist_ok=True)
        with open(self._ruta, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                {"profiles": [perfil_a_dict(p) for p in self._perfiles]},
                f,
                allow_unicode=True,
                sort_keys=False,
            )

    # ==============================
    # Lectura
    # ==============================
    def perfiles(self) -> tuple[PerfilBanco, ...]:
        return self._perfiles

    def obtener(self, clave_banco: str) -> PerfilBanco | None:
        for p in self._perfiles:
            if p.clave_banco == clave_banco:
                return p
        return None

    def buscar_perfiles_candidatos(self, cabeceras: list[str]) -> list[tuple[PerfilBanco, int]]:
        return buscar_perfiles_candidatos(self._perfiles, cabeceras)

    # ==============================
    # Escritura
    # ==============================
    def crear_perfil(self, perfil: PerfilBanco) -> tuple[PerfilBanco, bool]:
        """Da de alta un perfil; devuelve (perfil vigente, creado).

        Si ya existe un perfil con los mismos alias se devuelve ese sin crear
        otro. Si la clave de banco existe con otra disposición, la nueva versión
        reemplaza a la anterior.
        """
        with self._lock:
            firma = firma_alias(perfil)
            for existente in self._perfiles:
                if firma_alias(existente) == firma:
                    log.info(
                        "Perfil %s no creado: misma disposición que %s",
                        perfil.clave_banco, existente.clave_banco,
                    )
                    return existente, False

            nuevo = replace(
                perfil,
                version_banco=perfil.version_banco or version_del_dia(),
                secuencia=self._siguiente,
            )
            self._siguiente += 1
            restantes = tuple(p for p in self._perfiles if p.clave_banco != perfil.clave_banco)
            if len(restantes) != len(self._perfiles):
                log.info("Perfil %s reemplazado por la versión %s", perfil.clave_banco, nuevo.version_banco)
            self._perfiles = restantes + (nuevo,)
            self._guardar()
            log.info("Perfil creado: %s v%s", nuevo.clave_banco, nuevo.version_banco)
            return nuevo, True
