import pytest

from logic.asistente_mapeo import (
    SesionAsistenteMapeo,
    aceptar_mapeo,
    clasificar_contenido,
    construir_perfil,
    preparar_datos_asistente,
    validar_mapeo,
)
from logic.deteccion import construir_archivo
from logic.errores import MapeoIncompleto, SesionCancelada
from logic.modelos import RolColumna as R


FORMATOS = ["dd/mm/yyyy"]


@pytest.fixture
def archivo_sin_nombres():
    grilla = [
        ["Col A", "Col B", "Col C", ""],
        ["15/03/2024", "Recibo comunidad de propietarios", "-120,00", "1.000,00"],
        ["16/03/2024", "Nómina empresa ejemplo", "2.100,00", "3.100,00"],
    ]
    return construir_archivo(grilla, "raro.csv", 0)


def test_validar_mapeo_correcto():
    assert validar_mapeo({0: R.DATE, 1: R.DESCRIPTION, 2: R.AMOUNT}) == []
    assert validar_mapeo({0: R.DATE, 1: R.DEBIT, 2: R.CREDIT}) == []


def test_validar_mapeo_sin_fecha_ni_importe():
    errores = validar_mapeo({0: R.DESCRIPTION})
    assert "Debe asignar una columna de Fecha" in errores
    assert "Debe asignar columnas de importe (Importe con Signo, o Cargo/Abono)" in errores


def test_validar_mapeo_importe_y_cargo_abono():
    errores = validar_mapeo({0: R.DATE, 1: R.AMOUNT, 2: R.DEBIT})
    assert errores == ["No puede tener tanto Importe con Signo como Cargo/Abono separados"]


def test_validar_mapeo_roles_repetidos():
    errores = validar_mapeo({0: R.DATE, 1: R.DATE, 2: R.AMOUNT, 3: R.AMOUNT})
    assert "Solo puede haber una columna de Fecha" in errores
    assert any("amount" in e for e in errores)


def test_clasificar_contenido():
    assert clasificar_contenido(["15/03/2024", "16/03/2024"], FORMATOS) == "fechas"
    assert clasificar_contenido(["-120,00", "2.100,00"], FORMATOS) == "importes_con_signo"
    assert clasificar_contenido(["1.000,00", "3.100,00"], FORMATOS) == "importes"
    assert clasificar_contenido(["Recibo comunidad de propietarios"], FORMATOS) == "texto"
    assert clasificar_contenido([], FORMATOS) is None


def test_datos_asistente_con_sugerencias(archivo_sin_nombres):
    datos = preparar_datos_asistente(archivo_sin_nombres)
    assert datos.cabeceras == ["Col A", "Col B", "Col C"]
    assert len(datos.filas_muestra) == 2
    assert set(datos.mapeo_detectado.values()) == {R.UNKNOWN}
    assert any(s.startswith("Columna 1 (Col A)") and "fechas" in s for s in datos.sugerencias)
    assert any(s.startswith("Columna 3 (Col C)") and "con signo" in s for s in datos.sugerencias)
    assert any("sin cabecera" in a for a in datos.ambiguedades)
    assert "No se detectó ninguna columna de Fecha" in datos.ambiguedades


def test_aceptar_mapeo_incompleto_no_completa_por_defecto(archivo_sin_nombres, almacen_perfiles):
    datos = preparar_datos_asistente(archivo_sin_nombres)
    with pytest.raises(MapeoIncompleto) as exc:
        aceptar_mapeo(datos, {0: R.DATE}, "Banco raro", almacen_perfiles)
    assert exc.value.errores
    assert almacen_perfiles.perfiles() == ()


def test_aceptar_mapeo_guarda_perfil(archivo_sin_nombres, almacen_perfiles):
    datos = preparar_datos_asistente(archivo_sin_nombres)
    res = aceptar_mapeo(datos, {0: R.DATE, 1: R.DESCRIPTION, 2: R.AMOUNT, 3: R.BALANCE}, "Banco raro", almacen_perfiles)
    assert res.perfil_creado
    assert res.perfil.alias_cabeceras[R.DATE] == ("col a",)
    assert res.perfil.formato_numero.decimal == ","
    assert almacen_perfiles.obtener("Banco raro") is not None


def test_aceptar_mapeo_sin_nombre_no_guarda(archivo_sin_nombres, almacen_perfiles):
    datos = preparar_datos_asistente(archivo_sin_nombres)
    res = aceptar_mapeo(datos, {0: R.DATE, 2: R.AMOUNT}, None, almacen_perfiles)
    assert res.perfil is None
    assert almacen_perfiles.perfiles() == ()


def test_puntuacion_minima_alcanzable():
    perfil = construir_perfil(["Fecha", "Importe"], {0: R.DATE, 1: R.AMOUNT}, "Mini")
    assert perfil.puntuacion_minima == 6

    solo_tres = construir_perfil(["Fecha", "Cargo"], {0: R.DATE, 1: R.DEBIT}, "Mini")
    assert solo_tres.puntuacion_minima == 5


def test_sesion_reasignar_rol_libera_la_columna_anterior(archivo_sin_nombres):
    sesion = SesionAsistenteMapeo(preparar_datos_asistente(archivo_sin_nombres))
    sesion.asignar_rol(1, R.DATE)
    sesion.asignar_rol(0, "date")
    assert sesion.mapeo[0] is R.DATE
    assert sesion.mapeo[1] is R.UNKNOWN
    assert not sesion.es_valido
    sesion.asignar_rol(2, R.AMOUNT)
    assert sesion.es_valido


def test_sesion_cancelada_no_persiste(archivo_sin_nombres, almacen_perfiles):
    sesion = SesionAsistenteMapeo(preparar_datos_asistente(archivo_sin_nombres), almacen_perfiles)
    sesion.asignar_rol(0, R.DATE)
    sesion.asignar_rol(2, R.AMOUNT)
    sesion.cancelar()

    with pytest.raises(SesionCancelada):
        sesion.completar("Banco raro")
    assert almacen_perfiles.perfiles() == ()


def test_perfil_aprendido_recuerda_el_formato_de_fecha():
    filas = [["03/25/2024", "Coffee", "-3.50"], ["03/26/2024", "Salary", "2,100.00"]]
    perfil = construir_perfil(["Posted", "Memo", "Value"], {0: R.DATE, 1: R.DESCRIPTION, 2: R.AMOUNT}, "US Bank", filas)
    assert perfil.formatos_fecha[0] == "mm/dd/yyyy"
    assert perfil.formato_numero.decimal == "."
