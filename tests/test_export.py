import io
from datetime import date, datetime

from openpyxl import load_workbook

from infra.export import exportar_movimientos_excel, movimientos_a_dataframe

from conftest import mov


def _movimientos():
    return [
        mov("a-0", date(2024, 3, 15), -85.50, "Recibo IBERDROLA", saldo=1914.50, categoria="Suministros"),
        mov("b-0", date(2024, 3, 16), 1234.56, "Transferencia"),
    ]


def test_movimientos_a_dataframe():
    df = movimientos_a_dataframe(_movimientos())
    assert list(df["Id"]) == ["a-0", "b-0"]
    assert df["Fecha"].iloc[0].day == 15
    assert df["Importe"].iloc[1] == 1234.56
    assert df["Categoría"].iloc[0] == "Suministros"


def test_excel_conserva_fechas_y_formato():
    contenido = exportar_movimientos_excel(_movimientos())
    ws = load_workbook(io.BytesIO(contenido))["Movimientos"]

    cabeceras = [c.value for c in ws[1]]
    assert cabeceras[:3] == ["Fecha", "Fecha valor", "Descripción"]

    fecha = ws.cell(row=2, column=1)
    assert isinstance(fecha.value, datetime)
    assert fecha.value.date() == date(2024, 3, 15)
    assert fecha.number_format == "DD/MM/YYYY"

    importe = ws.cell(row=2, column=cabeceras.index("Importe") + 1)
    assert importe.value == -85.5
    assert importe.number_format == "#,##0.00"
