from __future__ import annotations
import io
from typing import Iterable

import pandas as pd
from openpyxl.styles import numbers

from logic.modelos import Movimiento


COLUMNAS_MOVIMIENTOS = [
    "Fecha", "Fecha valor", "Descripción", "Contraparte", "Referencia",
    "Importe", "Saldo", "Moneda", "Categoría", "Ámbito", "Inmueble",
    "Estado", "Registro", "Id",
]


def movimientos_a_dataframe(movimientos: Iterable[Movimiento]) -> pd.DataFrame:
    filas = [
        {
            "Fecha": m.fecha,
            "Fecha valor": m.fecha_valor,
            "Descripción": m.descripcion,
            "Contraparte": m.contraparte,
            "Referencia": m.referencia,
            "Importe": m.importe,
            "Saldo": m.saldo,
            "Moneda": m.moneda,
            "Categoría": m.categoria,
            "Ámbito": m.ambito,
            "Inmueble": m.inmueble_id,
            "Estado": m.estado_conciliacion,
            "Registro": m.registro_id,
            "Id": m.id,
        }
        for m in movimientos
    ]
    df = pd.DataFrame(filas, columns=COLUMNAS_MOVIMIENTOS)
    for col in ("Fecha", "Fecha valor"):
        df[col] = pd.to_datetime(df[col], errors="coerce")
    return df


def dataframe_a_excel_bytes(
    df: pd.DataFrame,
    sheet_name: str = "Conciliacion",
    formato_columnas_fecha: dict[str, str] | None = None,
    columnas_importe: list[str] | None = None,
) -> bytes:
    """
    Exporta un DataFrame a Excel conservando los tipos fecha (no texto).
    Si se pasa `formato_columnas_fecha` con {nombre_columna: "DD/MM/YYYY"}, aplica number_format.
    Las `columnas_importe` se formatean con dos decimales y separador de miles.
    """
    formatos = dict(formato_columnas_fecha or {})
    for col in columnas_importe or []:
        formatos[col] = numbers.FORMAT_NUMBER_COMMA_SEPARATED1

    buff = io.BytesIO()
    with pd.ExcelWriter(buff, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
        if formatos:
            ws = writer.sheets[sheet_name]
            # Mapear nombres de columnas a letras
            headers = [c.value for c in ws[1]]
            for col_name, fmt in formatos.items():
                if col_name in headers:
                    col_letter = ws.cell(row=1, column=headers.index(col_name) + 1).column_letter
                    for cell in ws[col_letter][1:]:
                        cell.number_format = fmt
    return buff.getvalue()


def exportar_movimientos_excel(movimientos: Iterable[Movimiento], sheet_name: str = "Movimientos") -> bytes:
    return dataframe_a_excel_bytes(
        movimientos_a_dataframe(movimientos),
        sheet_name=sheet_name,
        formato_columnas_fecha={"Fecha": "DD/MM/YYYY", "Fecha valor": "DD/MM/YYYY"},
        columnas_importe=["Importe", "Saldo"],
    )
