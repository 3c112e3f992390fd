from datetime import date

import pytest
import yaml

from infra.almacen_reglas import AlmacenReglas
from infra.libro_conciliacion import LibroConciliacion
from logic.modelos import ReglaConciliacion
from logic.reglas import aplicar_reglas, conciliacion_manual, derivar_firma, estadisticas_reglas

from conftest import mov


D = date(2024, 3, 15)


def _regla(firma, categoria="Suministros", ambito="PERSONAL"):
    return ReglaConciliacion(firma=firma, categoria=categoria, ambito=ambito, creada_desde="test")


def test_firma_desde_contraparte_sin_sufijo_societario():
    assert derivar_firma(mov("a", D, -1.0, "x", contraparte="Iberdrola Clientes SA")) == "iberdrola clientes"
    assert derivar_firma(mov("a", D, -1.0, "x", contraparte="Iberdrola Clientes, S.A.U.")) == "iberdrola clientes"


def test_firma_desde_descripcion_sin_fechas_importes_ni_codigos():
    m = mov("a", D, -1200.0, "TRANSFERENCIA 15/03/2024 ALQUILER LOCAL 1.200,00 REF 998877")
    assert derivar_firma(m) == "transferencia alquiler local ref"


def test_firma_larga_se_recorta():
    m = mov("a", D, -1.0, "palabra " * 20)
    firma = derivar_firma(m)
    assert 0 < len(firma) <= 50
    assert firma.split() == ["palabra"] * len(firma.split())


def test_recibo_iberdrola_crea_regla_y_la_aplica():
    libro = LibroConciliacion([
        mov("a", D, -85.50, "Recibo luz marzo", contraparte="Iberdrola Clientes SA"),
        mov("b", D, -92.10, "RECIBO IBERDROLA CLIENTES 0324"),
        mov("c", D, -40.00, "MERCADONA 1234"),
        mov("d", D, -85.50, "IBERDROLA CLIENTES", registro_id="r9", estado_conciliacion="match_manual"),
    ])
    almacen = AlmacenReglas()

    res = conciliacion_manual(libro, almacen, "a", "Suministros", "INMUEBLE", inmueble_id="piso-1")

    assert res.regla.firma == "iberdrola clientes"
    assert res.aplicados == 1
    assert res.movimiento.estado_conciliacion == "match_manual"
    assert res.movimiento.categoria == "Suministros"

    b = libro.movimiento("b")
    assert b.estado_conciliacion == "match_automatico"
    assert (b.categoria, b.ambito, b.inmueble_id) == ("Suministros", "INMUEBLE", "piso-1")
    assert b.firma_regla == "iberdrola clientes"
    assert b.registro_id is None

    assert libro.movimiento("c").categoria is None
    assert libro.movimiento("d").categoria is None
    assert almacen.buscar("iberdrola clientes").veces_aplicada == 1


def test_categorizacion_manual_sobrescribe_la_automatica():
    libro = LibroConciliacion([
        mov("a", D, -85.50, "x", contraparte="Iberdrola Clientes SA"),
        mov("b", D, -92.10, "RECIBO IBERDROLA CLIENTES"),
    ])
    almacen = AlmacenReglas()
    conciliacion_manual(libro, almacen, "a", "Suministros", "PERSONAL")
    assert libro.movimiento("b").estado_conciliacion == "match_automatico"

    res = conciliacion_manual(libro, almacen, "b", "Local comercial", "INMUEBLE", inmueble_id="local-2")
    assert res.movimiento.estado_conciliacion == "match_manual"
    assert libro.movimiento("b").categoria == "Local comercial"
    # la regla anterior no se borra
    assert almacen.buscar("iberdrola clientes") is not None


def test_firma_vacia_no_crea_regla():
    libro = LibroConciliacion([mov("a", D, -67.89, "12345 67,89"), mov("b", D, -1.0, "12345")])
    almacen = AlmacenReglas()
    res = conciliacion_manual(libro, almacen, "a", "Varios", "PERSONAL")
    assert res.regla is None
    assert res.aplicados == 0
    assert res.movimiento.categoria == "Varios"
    assert almacen.reglas() == []
    assert libro.movimiento("b").categoria is None


def test_ambito_invalido():
    libro = LibroConciliacion([mov("a", D, -1.0, "x")])
    with pytest.raises(ValueError):
        conciliacion_manual(libro, AlmacenReglas(), "a", "Varios", "EMPRESA")


def test_regla_mas_larga_gana():
    almacen = AlmacenReglas()
    almacen.guardar_regla(_regla("iberdrola", categoria="Genérico"))
    almacen.guardar_regla(_regla("iberdrola clientes", categoria="Luz"))
    assert almacen.regla_para("recibo iberdrola clientes", "negative").categoria == "Luz"
    assert almacen.regla_para("iberdrola gas", "negative").categoria == "Genérico"
    assert almacen.regla_para("endesa", "negative") is None
    assert almacen.regla_para("recibo iberdrola clientes", "positive") is None


def test_aplicar_reglas_a_movimientos_importados():
    almacen = AlmacenReglas()
    almacen.guardar_regla(_regla("iberdrola clientes"))
    movs = [mov("a", D, -85.50, "RECIBO IBERDROLA CLIENTES"), mov("b", D, -10.0, "Cafe")]
    out = aplicar_reglas(movs, almacen)
    assert out[0].estado_conciliacion == "match_automatico"
    assert out[0].categoria == "Suministros"
    assert out[1] == movs[1]
    assert almacen.buscar("iberdrola clientes").veces_aplicada == 1


def test_persistencia_yaml(tmp_path):
    ruta = tmp_path / "reglas.yaml"
    almacen = AlmacenReglas(ruta)
    almacen.guardar_regla(_regla("iberdrola clientes"))
    almacen.incrementar("iberdrola clientes", "negative", 3)

    data = yaml.safe_load(ruta.read_text(encoding="utf-8"))
    assert data["rules"][0]["signaturePattern"] == "iberdrola clientes"
    assert data["rules"][0]["amountSign"] == "negative"
    assert data["rules"][0]["timesApplied"] == 3
    assert AlmacenReglas(ruta).buscar("iberdrola clientes").veces_aplicada == 3


def test_estadisticas():
    almacen = AlmacenReglas()
    almacen.guardar_regla(_regla("a", ambito="PERSONAL"))
    almacen.guardar_regla(_regla("b", ambito="INMUEBLE"))
    almacen.incrementar("b", "negative", 2)
    est = estadisticas_reglas(almacen)
    assert est["total"] == 2
    assert est["por_ambito"] == {"PERSONAL": 1, "INMUEBLE": 1}
    assert est["aplicaciones"] == 2
    assert est["mas_usadas"][0] == ("b", 2)


def test_devolucion_no_hereda_la_regla_del_cargo():
    libro = LibroConciliacion([
        mov("a", D, -85.50, "Recibo luz", contraparte="Iberdrola Clientes SA"),
        mov("b", D, 30.00, "DEVOLUCION IBERDROLA CLIENTES"),
        mov("c", D, -92.10, "RECIBO IBERDROLA CLIENTES"),
    ])
    almacen = AlmacenReglas()

    res = conciliacion_manual(libro, almacen, "a", "Suministros", "PERSONAL")

    assert res.regla.signo == "negative"
    assert res.aplicados == 1
    assert libro.movimiento("c").categoria == "Suministros"
    devolucion = libro.movimiento("b")
    assert devolucion.categoria is None
    assert devolucion.estado_conciliacion == "sin_match"

    # al importar tampoco se aplica a abonos
    out = aplicar_reglas([mov("d", D, 30.00, "DEVOLUCION IBERDROLA CLIENTES")], almacen)
    assert out[0].categoria is None


def test_cargo_y_abono_de_la_misma_contraparte_son_reglas_distintas():
    libro = LibroConciliacion([
        mov("a", D, -85.50, "x", contraparte="Iberdrola Clientes SA"),
        mov("b", D, 30.00, "y", contraparte="Iberdrola Clientes SA"),
    ])
    almacen = AlmacenReglas()
    conciliacion_manual(libro, almacen, "a", "Suministros", "PERSONAL")
    conciliacion_manual(libro, almacen, "b", "Devoluciones", "PERSONAL")

    assert almacen.buscar("iberdrola clientes", "negative").categoria == "Suministros"
    assert almacen.buscar("iberdrola clientes", "positive").categoria == "Devoluciones"
    assert len(almacen.reglas()) == 2


def test_reglas_sin_signo_en_yaml_se_leen_como_cargos(tmp_path):
    ruta = tmp_path / "reglas.yaml"
    ruta.write_text(
        "rules:\n"
        "  - signaturePattern: mercadona\n"
        "    categoria: Supermercado\n"
        "    ambito: PERSONAL\n"
        "    timesApplied: 4\n",
        encoding="utf-8",
    )
    regla = AlmacenReglas(ruta).buscar("mercadona")
    assert regla.signo == "negative"
    assert regla.veces_aplicada == 4
