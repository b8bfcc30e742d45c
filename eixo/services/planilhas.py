import io

import pandas as pd


def gerar_xlsx(linhas, sheet_name='Planilha', columns=None):
    """Returns a BytesIO with one sheet built from a list of dicts."""
    df = pd.DataFrame(linhas, columns=columns)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name=sheet_name[:31], index=False)
    buffer.seek(0)
    return buffer
