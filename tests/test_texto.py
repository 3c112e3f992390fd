from logic.texto import contiene_palabras, demojibake, empieza_palabra, limpiar_celda, normalizar_texto


def test_normalizar_texto_acentos_y_puntuacion():
    assert normalizar_texto("  Fecha Operación. ") == "fecha operacion"
    assert normalizar_texto("F. Valor") == "f valor"
    assert normalizar_texto(None) == ""


def test_normalizar_texto_signo_pregunta():
    assert normalizar_texto("D?bito") == "debito"
    assert normalizar_texto("Cr?dito") == "credito"
    assert normalizar_texto("Descripci?n") == "descripcion"


def test_normalizar_texto_bom_y_mojibake():
    assert normalizar_texto("\ufeffFecha") == "fecha"
    assert normalizar_texto("DescripciÃ³n") == "descripcion"


def test_demojibake():
    assert demojibake("NaciÃ³n") == "Nación"
    assert demojibake("Nación") == "Nación"


def test_empieza_palabra_no_coincide_en_medio():
    assert empieza_palabra("importe eur", "importe")
    assert empieza_palabra("total importe", "importe")
    assert not empieza_palabra("reimporte", "importe")


def test_contiene_palabras_completas():
    assert contiene_palabras("saldo final del periodo", "saldo final")
    assert not contiene_palabras("saldo finalizado", "saldo final")
    assert not contiene_palabras("cualquier cosa", "")


def test_limpiar_celda():
    assert limpiar_celda(None) == ""
    assert limpiar_celda("nan") == ""
    assert limpiar_celda("  a   b ") == "a b"
