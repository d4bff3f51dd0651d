import csv
import io
import os
import tempfile
from typing import Iterable, Sequence

from fastapi.responses import FileResponse
from starlette.background import BackgroundTask


def csv_response(columns: Sequence[str], rows: Iterable[Sequence], filename: str) -> FileResponse:
    """Write ``rows`` under a ``columns`` header and serve it as a CSV download."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(columns)
    for r in rows:
        writer.writerow(r)
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix='.csv')
    tmp.write(output.getvalue().encode('utf-8'))
    tmp.flush()
    tmp.close()
    # the temp file goes away once the response has been sent
    return FileResponse(tmp.name, media_type='text/csv', filename=filename,
                        background=BackgroundTask(os.remove, tmp.name))
