from __future__ import annotations

from datetime import date
from typing import Iterable

from infra.config import get_config
from logic.modelos import FormatoNumero, PerfilBanco, RolColumna
from logic.texto import normalizar_texto


# Peso de cada rol al puntuar un perfil contra unas cabeceras
PESOS_ROL: dict[RolColumna, int] = {
    RolColumna.DATE: 3,
    RolColumna.AMOUNT: 3,
    RolColumna.DEBIT: 2,
    RolColumna.CREDIT: 2,
    RolColumna.VALUE_DATE: 1,
    RolColumna.DESCRIPTION: 1,
    RolColumna.COUNTERPARTY: 1,
    RolColumna.BALANCE: 1,
    RolColumna.REFERENCE: 1,
}


def version_del_dia(hoy: date | None = None) -> str:
    return (hoy or date.today()).strftime("%Y.%m.%d")


def puntuar_perfil(perfil: PerfilBanco, cabeceras: Iterable[str]) -> int:
    """Suma el peso de cada rol del perfil con algún alias presente en las cabeceras."""
    presentes = {normalizar_texto(c) for c in cabeceras}
    presentes.discard("")
    puntos = 0
    for rol, alias in perfil.alias_cabeceras.items():
        if any(a in presentes for a in alias):
            puntos += PESOS_ROL.get(rol, 0)
    return puntos


def puntuacion_alcanzable(perfil: PerfilBanco) -> int:
    return sum(PESOS_ROL.get(rol, 0) for rol, alias in perfil.alias_cabeceras.items() if alias)


def buscar_perfiles_candidatos(
    perfiles: Iterable[PerfilBanco],
    cabeceras: list[str],
) -> list[tuple[PerfilBanco, int]]:
    """Perfiles con puntuación positiva, de mayor a menor; empate -> el más reciente."""
    puntuados = [(p, puntuar_perfil(p, cabeceras)) for p in perfiles]
    puntuados = [(p, s) for p, s in puntuados if s > 0]
    puntuados.sort(key=lambda ps: (ps[1], ps[0].secuencia), reverse=True)
    return puntuados


def firma_alias(perfil: PerfilBanco) -> frozenset:
    """Identidad de la disposición de columnas, independiente del nombre del perfil."""
    return frozenset(
        (rol, frozenset(alias))
        for rol, alias in perfil.alias_cabeceras.items()
        if alias
    )


def normalizar_alias(alias_cabeceras: dict) -> dict[RolColumna, tuple[str, ...]]:
    out: dict[RolColumna, tuple[str, ...]] = {}
    for rol, alias in alias_cabeceras.items():
        rol = RolColumna(rol)
        if rol is RolColumna.UNKNOWN:
            continue
        vistos: list[str] = []
        for a in alias or []:
            clave = normalizar_texto(a)
            if clave and clave not in vistos:
                vistos.append(clave)
        if vistos:
            out[rol] = tuple(vistos)
    return out


# ==============================
# Serialización (claves camelCase del catálogo YAML)
# ==============================
def perfil_desde_dict(data: dict, secuencia: int = 0) -> PerfilBanco:
    formato = data.get("numberFormat") or {}
    return PerfilBanco(
        clave_banco=str(data["bankKey"]).strip(),
        version_banco=str(data.get("bankVersion") or version_del_dia()),
        alias_cabeceras=normalizar_alias(data.get("headerAliases") or {}),
        patrones_ruido=tuple(normalizar_texto(p) for p in data.get("noisePatterns") or [] if normalizar_texto(p)),
        formato_numero=FormatoNumero(
            decimal=formato.get("decimal", ","),
            miles=formato.get("thousand", "."),
        ),
        formatos_fecha=tuple(data.get("dateHints") or ("dd/mm/yyyy",)),
        puntuacion_minima=int(data.get("minScore", 3)),
        secuencia=int(data.get("sequence", secuencia)),
    )


def perfil_a_dict(perfil: PerfilBanco) -> dict:
    return {
        "bankKey": perfil.clave_banco,
        "bankVersion": perfil.version_banco,
        "headerAliases": {rol.value: list(alias) for rol, alias in perfil.alias_cabeceras.items()},
        "noisePatterns": list(perfil.patrones_ruido),
        "numberFormat": {
            "decimal": perfil.formato_numero.decimal,
            "thousand": perfil.formato_numero.miles,
        },
        "dateHints": list(perfil.formatos_fecha),
        "minScore": perfil.puntuacion_minima,
        "sequence": perfil.secuencia,
    }


def perfil_por_defecto(
    formato_numero: FormatoNumero | None = None,
    formatos_fecha: Iterable[str] | None = None,
    patrones_ruido: Iterable[str] | None = None,
) -> PerfilBanco:
    """Perfil genérico para archivos sin perfil reconocido; valores desde config.yaml."""
    cfg = get_config().normalizacion
    return PerfilBanco(
        clave_banco="generico",
        version_banco=version_del_dia(),
        alias_cabeceras={},
        patrones_ruido=tuple(
            normalizar_texto(p) for p in (patrones_ruido if patrones_ruido is not None else cfg.patrones_ruido)
        ),
        formato_numero=formato_numero or FormatoNumero(decimal=cfg.decimal, miles=cfg.miles),
        formatos_fecha=tuple(formatos_fecha if formatos_fecha is not None else cfg.formatos_fecha),
        puntuacion_minima=0,
    )
