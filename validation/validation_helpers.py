from pathlib import Path
from typing import List
import logging
import os
from dataclasses import dataclass

@dataclass(frozen=True)
class ValidationIssue:
    path: str
    code: str       # e.g., "MISSING_SOURCE", "SOURCE_NOT_READABLE", "OUTPUT_DIR_MISSING"
    severity: str   # "error" | "warning"
    message: str

def is_readable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.R_OK)

def is_writable_dir(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.W_OK)

def log_issues(issues: List[ValidationIssue], severity: str) -> bool:
    for issue in issues:
        (logging.error if issue.severity == severity else logging.warning)("❌ %s: %s", issue.code, issue.message)
    return any(i.severity == severity for i in issues)
