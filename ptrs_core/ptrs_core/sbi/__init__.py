"""Small Business Identification: import, validation and export."""

from ptrs_core.sbi.export import export_abn_csv
from ptrs_core.sbi.importer import SbiImportPipeline
from ptrs_core.sbi.outcomes import OutcomeClassifier, SbiVerdict
from ptrs_core.sbi.parser import ParsedSbiFile, parse_sbi_csv
from ptrs_core.sbi.status import get_sbi_status, get_sbi_upload, list_row_changes
from ptrs_core.sbi.validation import SbiValidationPass, is_submittable

__all__ = [
    "OutcomeClassifier",
    "ParsedSbiFile",
    "SbiImportPipeline",
    "SbiValidationPass",
    "SbiVerdict",
    "export_abn_csv",
    "get_sbi_status",
    "get_sbi_upload",
    "is_submittable",
    "list_row_changes",
    "parse_sbi_csv",
]
