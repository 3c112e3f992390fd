import shutil

import pytest

from infra.almacen_perfiles import AlmacenPerfiles
from infra.almacen_reglas import AlmacenReglas
from infra.config import resolver_ruta
from infra.libro_conciliacion import LibroConciliacion
from logic.modelos import Movimiento, RegistroEsperado


@pytest.fixture
def almacen_perfiles():
    """Almacén vacío en memoria."""
    return AlmacenPerfiles()


@pytest.fixture
def catalogo(tmp_path):
    """Catálogo semilla copiado a un directorio temporal para no tocar el del repo."""
    ruta = tmp_path / "perfiles_bancos.yaml"
    shutil.copy(resolver_ruta("perfiles_bancos.yaml"), ruta)
    return AlmacenPerfiles(ruta)


@pytest.fixture
def almacen_reglas():
    return AlmacenReglas()


@pytest.fixture
def libro():
    return LibroConciliacion()


@pytest.fixture
def grilla_santander():
    return [
        ["Extracto de movimientos", "", "", "", ""],
        ["Cuenta: ES12 0049 0000", "", "", "", ""],
        ["", "", "", "", ""],
        ["Fecha Operación", "Fecha Valor", "Concepto", "Importe", "Saldo"],
        ["15/03/2024", "15/03/2024", "Recibo IBERDROLA CLIENTES", "-85,50", "1.914,50"],
        ["16/03/2024", "16/03/2024", "Transferencia de Juan Pérez", "1.234,56", "3.149,06"],
        ["", "", "Saldo final", "", "3.149,06"],
    ]


def mov(id, fecha, importe, descripcion, contraparte=None, **kw):
    return Movimiento(
        id=id,
        cuenta_id="c1",
        fecha=fecha,
        importe=importe,
        descripcion=descripcion,
        contraparte=contraparte,
        **kw,
    )


def reg(id, contraparte, fecha_prevista, importe, **kw):
    return RegistroEsperado(id=id, contraparte=contraparte, fecha_prevista=fecha_prevista, importe=importe, **kw)

