"""Read-only view of the diagnostic sink, for the debugging console."""
import json

from fastapi import APIRouter, Depends

from careersync.diagnostics import DiagnosticReporter, get_reporter

router = APIRouter()


@router.get("")
def export_diagnostics(reporter: DiagnosticReporter = Depends(get_reporter)):
    """All captured errors and request traces, newest first."""
    return json.loads(reporter.export_all())


@router.delete("")
def clear_diagnostics(reporter: DiagnosticReporter = Depends(get_reporter)):
    reporter.clear_errors()
    reporter.clear_traces()
    return {"message": "Diagnostics cleared"}
